from __future__ import annotations

import time
import typing as t

import requests
from pydantic import ValidationError

from penguin_stats.consts import (
    BASE_URL,
    DEFAULT_SERVER,
    DEFAULT_TIMEOUT,
    PLANNER_URL,
    RECALL_OK,
    REPORT_CREATED,
    Server,
    coerce_server,
)
from penguin_stats.errors import BadStatusError, DecodeError, InvalidParameterError, RequestFailedError
from penguin_stats.matrix import DropMatrix
from penguin_stats.models import ArkPlannerPlan, ArkPlannerRequest, Drop, ReportPayload, Stage
from penguin_stats.utils import get_logger, normalize_http_url, redact_secrets, validate_against

logger = get_logger(__name__)


def _flag(value: bool) -> str:
    return "true" if value else "false"


class PenguinClient:
    """Synchronous client for the Penguin Statistics v2 API.

    One ``requests.Session`` is kept per client; the timeout applies to both
    connecting and reading.
    """

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        *,
        base_url: str = BASE_URL,
        planner_url: str = PLANNER_URL,
        session: t.Optional[requests.Session] = None,
    ):
        if timeout is None or float(timeout) <= 0:
            raise InvalidParameterError(f"timeout must be positive, got {timeout!r}")
        self.timeout = float(timeout)
        self.base_url = normalize_http_url(base_url)
        self.planner_url = normalize_http_url(planner_url)
        if not self.base_url or not self.planner_url:
            raise InvalidParameterError(f"invalid service URL: {base_url!r} / {planner_url!r}")
        self._session = session or requests.Session()

    def close(self) -> None:
        self._session.close()

    def __enter__(self) -> "PenguinClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # ---------- transport ----------

    def _send(self, method: str, url: str, **kwargs) -> requests.Response:
        t0 = time.monotonic()
        try:
            resp = self._session.request(method, url, timeout=(self.timeout, self.timeout), **kwargs)
        except requests.RequestException as e:
            raise RequestFailedError(f"unable to complete request {method} {url}: {redact_secrets(str(e))}") from e
        logger.info(
            "%s %s status=%d took_ms=%d",
            method,
            redact_secrets(str(getattr(resp, "url", url))),
            resp.status_code,
            int((time.monotonic() - t0) * 1000),
        )
        return resp

    @staticmethod
    def _decode(resp: requests.Response) -> t.Any:
        try:
            return resp.json()
        except ValueError as e:
            raise DecodeError(f"unable to decode response body: {e}") from e

    @staticmethod
    def _ensure_2xx(resp: requests.Response) -> None:
        if resp.status_code < 200 or resp.status_code >= 300:
            raise BadStatusError(resp.status_code, resp.text or "")

    @staticmethod
    def _source_headers(source: str) -> t.Dict[str, str]:
        return {"User-Agent": source} if source else {}

    # ---------- reports ----------

    def report_drop(
        self,
        server: t.Union[Server, str],
        stage_id: str,
        drops: t.Sequence[t.Union[Drop, dict]],
        source: str = "",
        version: str = "",
    ) -> str:
        """Submit the drops obtained from one run of ``stage_id``.

        ``source`` names the reporting application and is also sent as the
        User-Agent; ``version`` is that application's version. Returns the
        report hash, which can be passed to :meth:`recall_last_report`.
        """
        try:
            payload = ReportPayload(
                server=coerce_server(server),
                stage_id=stage_id,
                drops=[d if isinstance(d, Drop) else Drop.model_validate(d) for d in drops],
                source=source,
                version=version,
            )
        except ValidationError as e:
            raise InvalidParameterError(f"invalid report: {e}") from e
        body = payload.to_wire()
        try:
            validate_against(body, "report.schema.json", "Report")
        except ValueError as e:
            raise InvalidParameterError(str(e)) from e

        resp = self._send("POST", self.base_url + "/report", json=body, headers=self._source_headers(source))
        # TODO: parse the validation error body the service sends for malformed reports
        if resp.status_code != REPORT_CREATED:
            raise BadStatusError(resp.status_code, resp.text or "", expected=REPORT_CREATED)

        data = self._decode(resp)
        if not isinstance(data, dict) or not data.get("reportHash"):
            raise DecodeError(f"response has no reportHash: {data!r}")
        report_hash = str(data["reportHash"])
        logger.info("report accepted stage=%s drops=%d hash=%s", stage_id, len(payload.drops), report_hash)
        return report_hash

    def recall_last_report(self, report_hash: str, source: str = "") -> None:
        """Withdraw a report; the service only allows this within 24 hours."""
        if not report_hash:
            raise InvalidParameterError("report hash is required")
        resp = self._send(
            "POST",
            self.base_url + "/report/recall",
            json={"reportHash": report_hash},
            headers=self._source_headers(source),
        )
        if resp.status_code != RECALL_OK:
            raise BadStatusError(resp.status_code, resp.text or "", expected=RECALL_OK)
        logger.info("report recalled hash=%s", report_hash)

    # ---------- results ----------

    def get_matrix_data(self, server: t.Union[Server, str, None] = None) -> DropMatrix:
        """Drop matrix for ``server`` (CN when omitted), public data, open zones only."""
        s = DEFAULT_SERVER if server is None else coerce_server(server)
        return self._request_matrix(s, False, False, "")

    def get_matrix_data_custom_options(
        self,
        server: t.Union[Server, str],
        show_closed_zones: bool,
        is_personal: bool,
        user_id: str = "",
    ) -> DropMatrix:
        if is_personal and not user_id:
            raise InvalidParameterError("personal stats specified but no user ID provided")
        return self._request_matrix(coerce_server(server), show_closed_zones, is_personal, user_id)

    def _request_matrix(self, server: Server, show_closed_zones: bool, is_personal: bool, user_id: str) -> DropMatrix:
        params = {
            "server": server.value,
            "show_closed_zones": _flag(show_closed_zones),
            "is_personal": _flag(is_personal),
        }
        cookies = {"userID": user_id} if user_id else None
        resp = self._send("GET", self.base_url + "/result/matrix", params=params, cookies=cookies)
        self._ensure_2xx(resp)

        data = self._decode(resp)
        try:
            matrix = DropMatrix.from_json(data)
        except (ValidationError, ValueError) as e:
            raise DecodeError(f"could not decode matrix: {e}") from e
        logger.info("matrix server=%s records=%d", server.value, len(matrix))
        return matrix

    def get_all_stages(self, server: t.Union[Server, str, None] = None) -> t.List[Stage]:
        s = DEFAULT_SERVER if server is None else coerce_server(server)
        resp = self._send("GET", self.base_url + "/stages", params={"server": s.value})
        self._ensure_2xx(resp)

        data = self._decode(resp)
        if not isinstance(data, list):
            raise DecodeError(f"stages payload must be a list, got {type(data).__name__}")
        try:
            return [Stage.model_validate(row) for row in data]
        except ValidationError as e:
            raise DecodeError(f"could not decode stages: {e}") from e

    # ---------- planner ----------

    def send_ark_plan(self, payload: t.Union[ArkPlannerRequest, dict]) -> ArkPlannerPlan:
        """Ask ArkPlanner for a farming plan covering ``payload.required``."""
        try:
            req = payload if isinstance(payload, ArkPlannerRequest) else ArkPlannerRequest.model_validate(payload)
        except ValidationError as e:
            raise InvalidParameterError(f"invalid planner request: {e}") from e

        resp = self._send("POST", self.planner_url, json=req.model_dump(mode="json"))
        self._ensure_2xx(resp)

        data = self._decode(resp)
        try:
            return ArkPlannerPlan.model_validate(data)
        except ValidationError as e:
            raise DecodeError(f"could not decode plan: {e}") from e
