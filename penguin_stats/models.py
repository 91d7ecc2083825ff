from __future__ import annotations

import datetime as dt
import typing as t

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from penguin_stats.consts import DEFAULT_SERVER, DropType, Server
from penguin_stats.utils import parse_datetime_safe, to_epoch_millis


class Drop(BaseModel):
    """One item obtained at the end of a stage.

    At least one drop is required when sending results to the report API.
    """

    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)

    drop_type: DropType = Field(DropType.NORMAL_DROP, alias="dropType")
    item_id: str = Field("", alias="itemId")
    quantity: int = 0


class StageDrop(BaseModel):
    """Aggregated drop observation for one item at one stage over a time window.

    Values are kept exactly as the service sends them; negative or otherwise
    odd counts are not rejected.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    stage_id: str = Field("", alias="stageId")
    item_id: str = Field("", alias="itemId")
    quantity: int = 0
    times: int = 0
    start: t.Optional[dt.datetime] = None
    end: t.Optional[dt.datetime] = None

    @field_validator("start", "end", mode="before")
    @classmethod
    def _parse_timestamp(cls, v):
        if v is None or v == "":
            return None
        parsed = parse_datetime_safe(v)
        if parsed is None:
            raise ValueError(f"unrecognised timestamp: {v!r}")
        return parsed

    @field_serializer("start", "end")
    def _dump_timestamp(self, v: t.Optional[dt.datetime]) -> t.Optional[int]:
        return to_epoch_millis(v)

    @property
    def rate(self) -> float:
        """Observed drops per run, 0.0 when the stage was never run."""
        if not self.times:
            return 0.0
        return self.quantity / self.times


class ReportPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)

    server: Server = DEFAULT_SERVER
    stage_id: str = Field(alias="stageId")
    drops: t.List[Drop] = Field(default_factory=list)
    source: str = ""
    version: str = ""

    def to_wire(self) -> dict:
        # empty optional fields are left off the body
        body = self.model_dump(by_alias=True, mode="json")
        for key in ("source", "version"):
            if not body.get(key):
                body.pop(key, None)
        return body


class Stage(BaseModel):
    """Stage metadata; keys beyond the common ones are preserved as extras."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    stage_id: str = Field("", alias="stageId")
    zone_id: str = Field("", alias="zoneId")
    stage_type: str = Field("", alias="stageType")
    code: str = ""
    ap_cost: int = Field(0, alias="apCost")


class ArkPlannerRequest(BaseModel):
    """Body accepted by the ArkPlanner farming-plan service."""

    model_config = ConfigDict(use_enum_values=True)

    required: t.Dict[str, int] = Field(default_factory=dict)
    owned: t.Dict[str, int] = Field(default_factory=dict)
    extra_outc: bool = False
    exp_demand: bool = True
    gold_demand: bool = True
    input_lang: str = "id"
    output_lang: str = "id"
    server: Server = DEFAULT_SERVER
    store: bool = False
    exclude: t.List[str] = Field(default_factory=list)


class PlanStage(BaseModel):
    model_config = ConfigDict(extra="allow")

    stage: str
    count: float
    items: t.Dict[str, float] = Field(default_factory=dict)


class PlanSynthesis(BaseModel):
    model_config = ConfigDict(extra="allow")

    target: str
    count: float
    materials: t.Dict[str, float] = Field(default_factory=dict)


class ItemValue(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str
    value: float


class ValueLevel(BaseModel):
    model_config = ConfigDict(extra="allow")

    level: str
    items: t.List[ItemValue] = Field(default_factory=list)


class ArkPlannerPlan(BaseModel):
    model_config = ConfigDict(extra="allow")

    cost: int = 0
    gcost: int = 0
    gold: int = 0
    exp: int = 0
    stages: t.List[PlanStage] = Field(default_factory=list)
    syntheses: t.List[PlanSynthesis] = Field(default_factory=list)
    values: t.List[ValueLevel] = Field(default_factory=list)
