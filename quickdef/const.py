WARNING = "warning"
ERROR = "error"
NOTE = "note"

PIPE = "pipe"
FILE = "file"
INPUT_MODES = (PIPE, FILE)
