USERS_COLLECTION = "users"
TASKS_COLLECTION = "tasks"
PLANTS_COLLECTION = "plants"
INVENTORY_COLLECTION = "inventory"
HEALTH_COLLECTION = "healthData"
PROGRESS_COLLECTION = "progress"
PROGRESS_DOCUMENT = "current"
LOGIN_INFORMATION_COLLECTION = "UserLOGININFORMATION"
