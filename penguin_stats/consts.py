from enum import Enum

from penguin_stats.errors import InvalidParameterError


class Server(str, Enum):
    """Game server regions the stats service aggregates separately."""

    US = "US"
    CN = "CN"
    JP = "JP"
    KR = "KR"


class DropType(str, Enum):
    NORMAL_DROP = "NORMAL_DROP"
    SPECIAL_DROP = "SPECIAL_DROP"
    EXTRA_DROP = "EXTRA_DROP"
    FURNITURE = "FURNITURE"


BASE_URL = "https://penguin-stats.io/PenguinStats/api/v2"
PLANNER_URL = "https://planner.penguin-stats.io/plan"

# Service docs name CN as the default region
DEFAULT_SERVER = Server.CN
DEFAULT_TIMEOUT = 5.0

REPORT_CREATED = 201
RECALL_OK = 200


def coerce_server(value) -> Server:
    if isinstance(value, Server):
        return value
    try:
        return Server(str(value).strip().upper())
    except ValueError as e:
        allowed = ", ".join(s.value for s in Server)
        raise InvalidParameterError(f"Unknown server {value!r}; expected one of {allowed}") from e
