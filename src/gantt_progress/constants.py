STATE_DIR_NAME = ".gantt_progress"
CONFIG_FILE = "config.yaml"

DEFAULT_LOG_LEVEL = "INFO"
VALID_LOG_LEVELS = {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}

DEFAULT_PROPAGATE_TO_ANCESTORS = False

# Toolbar "new task" estimate: 40 hours of 8-hour days
DEFAULT_NEW_TASK_TEXT = "New task"
DEFAULT_NEW_TASK_DURATION = 5
# "+" button on a row: one 8-hour day
DEFAULT_NEW_CHILD_TEXT = "New subtask"
DEFAULT_NEW_CHILD_DURATION = 1

SECONDS_PER_DAY = 60 * 60 * 24

PROGRESS_MIN = 0
PROGRESS_MAX = 100

# Widget event names
EVENT_ADD_TASK = "add-task"
EVENT_UPDATE_TASK = "update-task"
EVENT_DELETE_TASK = "delete-task"
EVENT_MOVE_TASK = "move-task"
EVENT_COPY_TASK = "copy-task"

MUTATION_EVENTS = (
    EVENT_ADD_TASK,
    EVENT_UPDATE_TASK,
    EVENT_DELETE_TASK,
    EVENT_MOVE_TASK,
    EVENT_COPY_TASK,
)

# Commands that only touch UI state
COMMAND_OPEN_TASK = "open-task"
COMMAND_CLOSE_TASK = "close-task"

PLACEMENT_CHILD = "child"
PLACEMENT_BEFORE = "before"
PLACEMENT_AFTER = "after"
VALID_PLACEMENTS = {PLACEMENT_CHILD, PLACEMENT_BEFORE, PLACEMENT_AFTER}
