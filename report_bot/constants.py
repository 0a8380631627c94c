from __future__ import annotations

APP_VERSION = "1.1.0"

CANCEL_TOKENS = {
    "/cancel",
    "cancel",
    "отмена",
    "отменить",
    "стоп",
}

AFFIRMATIVE_TOKENS = {
    "да",
    "д",
    "yes",
    "y",
    "+",
    "1",
    "true",
    "сварена",
    "есть",
}

NEGATIVE_TOKENS = {
    "нет",
    "н",
    "no",
    "n",
    "-",
    "0",
    "false",
    "не сварена",
}

# Maps an optional free-text answer to an empty value.
NONE_TOKENS = {
    "нет",
    "-",
    "none",
    "no",
}

TODAY_TOKENS = {
    "сегодня",
    "today",
}

DATE_FORMAT = "%d.%m.%Y"

# Callback data prefixes for inline keyboards.
NEW_REPORT_CALLBACK = "new_report"
ANSWER_CALLBACK_PREFIX = "answer:"

# Summed into "Всего элементов" of the user acknowledgement.
ITEM_FIELDS = [
    "sockets",
    "ko_big",
    "ko_small",
    "manholes",
]

# Summed into "Общая длина" of the user acknowledgement.
LENGTH_FIELDS = [
    "vok1",
    "boxes",
    "corrugation",
    "trench",
]

# The public channel gets a reduced set of totals.
CHANNEL_ITEM_FIELDS = [
    "sockets",
    "manholes",
]

CHANNEL_ACKNOWLEDGEMENT = "acknowledgement"
CHANNEL_EMAIL = "email"
CHANNEL_SPREADSHEET = "spreadsheet"
CHANNEL_BROADCAST = "broadcast"

CHANNELS = [
    CHANNEL_ACKNOWLEDGEMENT,
    CHANNEL_EMAIL,
    CHANNEL_SPREADSHEET,
    CHANNEL_BROADCAST,
]

MY_REPORTS_LIMIT = 10
