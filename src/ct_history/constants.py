"""Project-wide constants for ct-history."""

CONFIG_FILE_NAME = ".ct-history.yaml"
ENV_PREFIX = "CT_HISTORY_"

CLEARTOOL_EXECUTABLE = "cleartool"
CLEARTOOL_ERROR_PREFIX = "cleartool: Error:"

# lshistory -fmt directives
DATE_NUMERIC = "%Nd"
USER_ID = "%u"
EVENT = "%e"
NAME_ELEMENTNAME = "%En"
NAME_VERSIONID = "%Vn"
OPERATION = "%o"
UCM_VERSION_ACTIVITY = "%[activity]p"
COMMENT = "%Nc"
LINEEND = "\\n"

DEFAULT_DATE_FORMATS = ("%Y%m%d.%H%M%S",)
SINCE_DATE_FORMAT = "%d-%b-%y.%H:%M:%SUTC+0000"
DEFAULT_MAX_TIME_DIFFERENCE_MS = 1000
DEFAULT_ENCODING = "utf-8"
