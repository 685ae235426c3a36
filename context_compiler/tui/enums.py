from enum import Enum

from context_compiler.models import OutputStatus, Severity


class UIStyle(str, Enum):
    BLUE = "blue"
    GREEN = "green"
    YELLOW = "yellow"
    RED = "red"
    CYAN = "cyan"
    MAGENTA = "magenta"
    DIM = "dim"
    WHITE = "white"


SEVERITY_STYLE = {
    Severity.ERROR: UIStyle.RED.value,
    Severity.WARNING: UIStyle.YELLOW.value,
}


OUTPUT_STATUS_STYLE = {
    OutputStatus.OK: UIStyle.GREEN.value,
    OutputStatus.MISSING: UIStyle.RED.value,
    OutputStatus.MODIFIED: UIStyle.YELLOW.value,
    OutputStatus.UNSIGNED: UIStyle.MAGENTA.value,
}
