"""Declarative report fields and their validators.

A schema is an ordered set of :class:`FieldSpec` entries linked by
``next_key`` (and optional per-value ``branches``). The chain is checked
once, when the schema is built: every referenced key exists, there are no
cycles and exactly one field is terminal.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Callable, Iterable, Mapping

from .constants import AFFIRMATIVE_TOKENS, DATE_FORMAT, NEGATIVE_TOKENS, NONE_TOKENS, TODAY_TOKENS
from .models import ChoiceOption


class SchemaError(RuntimeError):
    pass


class ValidationError(ValueError):
    """Raised by a validator; ``expected`` tells the user what format is accepted."""

    def __init__(self, expected: str) -> None:
        super().__init__(expected)
        self.expected = expected


class FieldKind(str, Enum):
    TEXT = "text"
    CHOICE = "choice"
    BOOLEAN = "boolean"
    NUMBER = "number"


Validator = Callable[[str], Any]


@dataclass(frozen=True, slots=True)
class FieldSpec:
    key: str
    label: str
    prompt: str
    kind: FieldKind
    validator: Validator
    next_key: str | None = None
    options: tuple[ChoiceOption, ...] = ()
    branches: Mapping[Any, str] = field(default_factory=dict)
    unit: str | None = None

    @property
    def terminal(self) -> bool:
        return self.next_key is None and not self.branches


def _clean(raw: str) -> str:
    return " ".join((raw or "").split())


def text_validator(optional: bool = False, max_length: int = 500) -> Validator:
    def validate(raw: str) -> str:
        value = _clean(raw)
        if optional and value.lower() in NONE_TOKENS:
            return ""
        if not value:
            raise ValidationError("непустой текст" + (" или «нет»" if optional else ""))
        if len(value) > max_length:
            raise ValidationError(f"текст не длиннее {max_length} символов")
        return value

    return validate


def number_validator(integer: bool = True, allow_zero: bool = True) -> Validator:
    expected = "целое число" if integer else "число (например, 12.5)"
    expected += " не меньше нуля" if allow_zero else " больше нуля"

    def validate(raw: str) -> int | float:
        value_raw = _clean(raw).replace(" ", "").replace(",", ".")
        try:
            if integer:
                value: int | float = int(value_raw)
            else:
                value = float(value_raw)
        except ValueError as exc:
            raise ValidationError(expected) from exc

        if value != value or value in (float("inf"), float("-inf")):
            raise ValidationError(expected)
        if value < 0 or (value == 0 and not allow_zero):
            raise ValidationError(expected)
        if not integer and float(value).is_integer():
            return int(value)
        return value

    return validate


def boolean_validator(raw: str) -> bool:
    value = _clean(raw).lower()
    if value in AFFIRMATIVE_TOKENS:
        return True
    if value in NEGATIVE_TOKENS:
        return False
    raise ValidationError("«да» или «нет»")


def choice_validator(options: Iterable[ChoiceOption]) -> Validator:
    options = tuple(options)
    lookup: dict[str, Any] = {}
    for option in options:
        lookup[str(option.value).lower()] = option.value
        lookup[option.label.lower()] = option.value
    expected = "один из вариантов: " + ", ".join(o.label for o in options)

    def validate(raw: str) -> Any:
        value = _clean(raw).lower()
        if value not in lookup:
            raise ValidationError(expected)
        return lookup[value]

    return validate


_PHONE_ALLOWED = re.compile(r"^\+?[\d\s()\-]+$")


def phone_validator(raw: str) -> str:
    value = _clean(raw)
    digits = re.sub(r"\D", "", value)
    if not _PHONE_ALLOWED.match(value) or not 7 <= len(digits) <= 15:
        raise ValidationError("номер телефона, например +7 900 123-45-67")
    return value


def date_validator(today: Callable[[], date] = date.today) -> Validator:
    def validate(raw: str) -> str:
        value = _clean(raw).lower()
        if value in TODAY_TOKENS:
            return today().strftime(DATE_FORMAT)
        try:
            parsed = datetime.strptime(value.replace("/", ".").replace("-", "."), DATE_FORMAT)
        except ValueError as exc:
            raise ValidationError("дата в формате ДД.ММ.ГГГГ или «сегодня»") from exc
        return parsed.strftime(DATE_FORMAT)

    return validate


class FieldSchema:
    def __init__(self, fields: Iterable[FieldSpec]) -> None:
        self._fields: dict[str, FieldSpec] = {}
        for spec in fields:
            if spec.key in self._fields:
                raise SchemaError(f"Duplicate field key: {spec.key}")
            self._fields[spec.key] = spec

        if not self._fields:
            raise SchemaError("Schema must declare at least one field")

        self.first_key = next(iter(self._fields))
        self._check_chain()

    def _check_chain(self) -> None:
        for spec in self._fields.values():
            for target in self._targets(spec):
                if target not in self._fields:
                    raise SchemaError(f"Field '{spec.key}' points to unknown field '{target}'")

        terminals = [spec.key for spec in self._fields.values() if spec.terminal]
        if len(terminals) != 1:
            raise SchemaError(f"Schema must have exactly one terminal field, found: {terminals}")

        visiting: set[str] = set()
        done: set[str] = set()

        def visit(key: str) -> None:
            if key in done:
                return
            if key in visiting:
                raise SchemaError(f"Field chain has a cycle through '{key}'")
            visiting.add(key)
            for target in self._targets(self._fields[key]):
                visit(target)
            visiting.discard(key)
            done.add(key)

        visit(self.first_key)

        unreachable = [key for key in self._fields if key not in done]
        if unreachable:
            raise SchemaError(f"Fields unreachable from '{self.first_key}': {unreachable}")

    @staticmethod
    def _targets(spec: FieldSpec) -> list[str]:
        targets = list(spec.branches.values())
        if spec.next_key is not None:
            targets.append(spec.next_key)
        return targets

    def __contains__(self, key: object) -> bool:
        return key in self._fields

    def __len__(self) -> int:
        return len(self._fields)

    def __iter__(self):
        return iter(self._fields.values())

    @property
    def keys(self) -> list[str]:
        return list(self._fields)

    def get(self, key: str) -> FieldSpec:
        try:
            return self._fields[key]
        except KeyError as exc:
            raise SchemaError(f"Unknown field: {key}") from exc

    def validate(self, key: str, raw: str) -> Any:
        return self.get(key).validator(raw)

    def next_key(self, key: str, value: Any) -> str | None:
        spec = self.get(key)
        if spec.branches:
            branch = spec.branches.get(value)
            if branch is not None:
                return branch
        return spec.next_key

    def numeric_keys(self) -> list[str]:
        return [spec.key for spec in self._fields.values() if spec.kind is FieldKind.NUMBER]

    def position(self, key: str) -> int:
        return self.keys.index(key) + 1


CUSTOMER_TYPE_OPTIONS = (
    ChoiceOption(value="subscriber", label="Абонент"),
    ChoiceOption(value="legal_entity", label="Юр. лицо"),
)

BOOLEAN_OPTIONS = (
    ChoiceOption(value="да", label="Да"),
    ChoiceOption(value="нет", label="Нет"),
)


def _quantity(key: str, label: str, unit: str, next_key: str | None, integer: bool, allow_zero: bool) -> FieldSpec:
    hint = "целое число" if integer else "число, можно дробное"
    return FieldSpec(
        key=key,
        label=label,
        prompt=f"{label}, {unit}? ({hint})",
        kind=FieldKind.NUMBER,
        validator=number_validator(integer=integer, allow_zero=allow_zero),
        next_key=next_key,
        unit=unit,
    )


def build_report_schema(allow_zero: bool = True, today: Callable[[], date] = date.today) -> FieldSchema:
    """Field-work report: customer block, installation, earth works, comment."""
    return FieldSchema(
        [
            FieldSpec(
                key="customer_type",
                label="Заказчик",
                prompt="Тип заказчика?",
                kind=FieldKind.CHOICE,
                validator=choice_validator(CUSTOMER_TYPE_OPTIONS),
                next_key="customer_name",
                options=CUSTOMER_TYPE_OPTIONS,
            ),
            FieldSpec(
                key="customer_name",
                label="Название",
                prompt="Название или ФИО заказчика?",
                kind=FieldKind.TEXT,
                validator=text_validator(),
                next_key="address",
            ),
            FieldSpec(
                key="address",
                label="Адрес",
                prompt="Адрес объекта?",
                kind=FieldKind.TEXT,
                validator=text_validator(),
                next_key="phone",
            ),
            FieldSpec(
                key="phone",
                label="Телефон",
                prompt="Контактный телефон?",
                kind=FieldKind.TEXT,
                validator=phone_validator,
                next_key="employee",
            ),
            FieldSpec(
                key="employee",
                label="Сотрудник",
                prompt="ФИО сотрудника, выполнившего работы?",
                kind=FieldKind.TEXT,
                validator=text_validator(max_length=120),
                next_key="work_date",
            ),
            FieldSpec(
                key="work_date",
                label="Дата",
                prompt="Дата выполнения работ? (ДД.ММ.ГГГГ или «сегодня»)",
                kind=FieldKind.TEXT,
                validator=date_validator(today),
                next_key="sockets",
            ),
            _quantity("sockets", "Розетки", "шт.", "vok1", integer=True, allow_zero=allow_zero),
            _quantity("vok1", "ВОК1", "м", "boxes", integer=False, allow_zero=allow_zero),
            _quantity("boxes", "Коробы", "м", "corrugation", integer=False, allow_zero=allow_zero),
            _quantity("corrugation", "Гофра", "м", "ko_big", integer=False, allow_zero=allow_zero),
            _quantity("ko_big", "КО большая", "шт.", "ko_small", integer=True, allow_zero=allow_zero),
            _quantity("ko_small", "КО малая", "шт.", "minimuff", integer=True, allow_zero=allow_zero),
            FieldSpec(
                key="minimuff",
                label="Минимуфта",
                prompt="Минимуфта сварена?",
                kind=FieldKind.BOOLEAN,
                validator=boolean_validator,
                next_key="trench",
                options=BOOLEAN_OPTIONS,
            ),
            _quantity("trench", "Траншея", "м", "manholes", integer=False, allow_zero=allow_zero),
            _quantity("manholes", "Колодцы", "шт.", "comment", integer=True, allow_zero=allow_zero),
            FieldSpec(
                key="comment",
                label="Комментарий",
                prompt="Комментарий к отчёту? (или «нет»)",
                kind=FieldKind.TEXT,
                validator=text_validator(optional=True, max_length=1000),
            ),
        ]
    )
