DEFAULT_THEME = "default"
STARTING_COINS = 10
FIRST_PLANT_NAME = "My First Plant"

TASK_TEXT_MAX_LENGTH = 500
TASK_CATEGORY_MAX_LENGTH = 50
PLANT_NAME_MAX_LENGTH = 50
NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 50
PASSWORD_MIN_LENGTH = 6

PRIORITIES = ("low", "medium", "high")
RECURRENCES = ("none", "daily", "weekly", "monthly")
ITEM_TYPES = ("theme", "decoration", "plant-skin")

THEME_ITEM_TYPE = "theme"

# Theme ids accepted by the legacy PATCH /users/theme endpoint.
SELECTABLE_THEMES = (
    "default",
    "theme_dark",
    "theme_forest",
    "theme_ocean",
    "theme_sunset",
    "theme_space",
)

STARTER_TASKS = (
    {"text": "Complete your first task", "priority": "high", "category": "Getting started"},
    {"text": "Drink a glass of water", "priority": "medium", "category": "Health"},
    {"text": "Write down one goal for this week", "priority": "low", "category": "Planning"},
)

EXPORT_VERSION = "1.0"
EXPORT_HEALTH_DAYS = 30

SEARCH_DEFAULT_LIMIT = 50
