import json
import sys
import time
import uuid
import yaml
from typing import Dict, Any, List, Optional

from penguin_stats.client import PenguinClient
from penguin_stats.consts import DEFAULT_TIMEOUT, DropType
from penguin_stats.models import Drop
from penguin_stats.utils import env_defaults, get_logger, load_file, validate_config, write_output

logger = get_logger(__name__)

COMMANDS = ("matrix", "stages", "report", "recall", "plan")


def load_config(config_path: Optional[str]) -> Dict[str, Any]:
    """Environment defaults overlaid with the YAML file, validated."""
    cfg = env_defaults()
    if config_path:
        with open(config_path, "r", encoding="utf-8") as f:
            try:
                file_cfg = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ValueError(f"Config validation error: {config_path} is not valid YAML: {e}") from e
        if not isinstance(file_cfg, dict):
            raise ValueError(f"Config validation error: top level must be a mapping in {config_path}")
        for section, values in file_cfg.items():
            if isinstance(values, dict):
                cfg.setdefault(section, {}).update(values)
            else:
                cfg[section] = values
    validate_config(cfg)
    return cfg


def _apply_overrides(cfg: Dict[str, Any], overrides: Optional[Dict[str, Any]]) -> None:
    if not overrides:
        return

    client = cfg.setdefault("client", {})
    if overrides.get("base_url") is not None:
        client["base_url"] = overrides["base_url"]
    if overrides.get("timeout") is not None:
        client["timeout"] = float(overrides["timeout"])  # type: ignore[arg-type]

    query = cfg.setdefault("query", {})
    for key in ("server", "show_closed_zones", "is_personal", "user_id", "stage_id", "index"):
        if overrides.get(key) is not None:
            query[key] = overrides[key]

    if overrides.get("source") is not None or overrides.get("version") is not None:
        rp = cfg.setdefault("report", {})
        if overrides.get("source") is not None:
            rp["source"] = overrides["source"]
        if overrides.get("version") is not None:
            rp["version"] = overrides["version"]

    if overrides.get("output_dir") is not None:
        out = cfg.setdefault("output", {})
        out["dir"] = overrides["output_dir"]


def parse_drop(spec: str) -> Drop:
    """``TYPE:ITEM:QTY`` or ``ITEM:QTY`` (normal drop) into a :class:`Drop`."""
    parts = spec.split(":")
    if len(parts) == 2:
        parts = [DropType.NORMAL_DROP.value] + parts
    if len(parts) != 3:
        raise ValueError(f"drop must look like TYPE:ITEM:QTY, got {spec!r}")
    drop_type, item_id, qty = parts
    try:
        quantity = int(qty)
    except ValueError as e:
        raise ValueError(f"drop quantity must be an integer, got {qty!r}") from e
    return Drop(drop_type=DropType(drop_type.upper()), item_id=item_id, quantity=quantity)


def _build_client(cfg: Dict[str, Any]) -> PenguinClient:
    client_cfg = cfg.get("client") or {}
    kwargs: Dict[str, Any] = {}
    if client_cfg.get("base_url"):
        kwargs["base_url"] = client_cfg["base_url"]
    if client_cfg.get("planner_url"):
        kwargs["planner_url"] = client_cfg["planner_url"]
    return PenguinClient(float(client_cfg.get("timeout", DEFAULT_TIMEOUT)), **kwargs)


def _execute_command(client: PenguinClient, cfg: Dict[str, Any], command: str, params: Dict[str, Any]) -> Any:
    """Run one command and return a JSON-serialisable result."""
    query = cfg.get("query") or {}
    server = query.get("server")

    if command == "matrix":
        if query.get("is_personal") or query.get("show_closed_zones"):
            matrix = client.get_matrix_data_custom_options(
                server or "CN",
                bool(query.get("show_closed_zones")),
                bool(query.get("is_personal")),
                query.get("user_id") or "",
            )
        else:
            matrix = client.get_matrix_data(server)
        if query.get("index"):
            matrix.build_index()
        stage_id = query.get("stage_id")
        if stage_id:
            rows = matrix.lookup(stage_id)
            logger.info("stage=%s records=%d", stage_id, len(rows))
            return [r.model_dump(by_alias=True, mode="json") for r in rows]
        return matrix.to_json()

    if command == "stages":
        return [s.model_dump(by_alias=True, mode="json") for s in client.get_all_stages(server)]

    if command == "report":
        stage_id = params.get("stage_id") or query.get("stage_id")
        if not stage_id:
            raise ValueError("report requires a stage id")
        drops = [parse_drop(d) for d in params.get("drops") or []]
        rp = cfg.get("report") or {}
        report_hash = client.report_drop(
            server or "CN",
            stage_id,
            drops,
            source=rp.get("source", ""),
            version=rp.get("version", ""),
        )
        return {"reportHash": report_hash}

    if command == "recall":
        rp = cfg.get("report") or {}
        client.recall_last_report(params.get("report_hash") or "", source=rp.get("source", ""))
        return {"recalled": params.get("report_hash")}

    if command == "plan":
        request_path = params.get("request_path")
        if not request_path:
            raise ValueError("plan requires a request file")
        try:
            payload = json.loads(load_file(request_path))
        except ValueError as e:
            raise ValueError(f"plan request {request_path} is not valid JSON: {e}") from e
        if not isinstance(payload, dict):
            raise ValueError(f"plan request must be a JSON object, got {type(payload).__name__}")
        if server and "server" not in payload:
            payload["server"] = server
        return client.send_ark_plan(payload).model_dump(mode="json")

    raise ValueError(f"Unknown command: {command}")


def run_once(
    config_path: Optional[str],
    command: str,
    *,
    params: Optional[Dict[str, Any]] = None,
    overrides: Optional[Dict[str, Any]] = None,
    client: Optional[PenguinClient] = None,
) -> Any:
    """Execute one command with the given config file path; returns the result."""
    run_id = uuid.uuid4().hex[:8]
    logger.info("=== run start id=%s command=%s ===", run_id, command)

    try:
        cfg = load_config(config_path)
        _apply_overrides(cfg, overrides)
        validate_config(cfg)

        own_client = client is None
        client = client or _build_client(cfg)
        try:
            t0 = time.monotonic()
            result = _execute_command(client, cfg, command, params or {})
            logger.info("command=%s took_ms=%d", command, int((time.monotonic() - t0) * 1000))
        finally:
            if own_client:
                client.close()

        out_cfg = cfg.get("output")
        if out_cfg:
            files: List[str] = write_output(command, result, out_cfg)
            logger.info("output written dir=%s files=%d", out_cfg["dir"], len(files))
        else:
            json.dump(result, sys.stdout, ensure_ascii=False, indent=2)
            sys.stdout.write("\n")
        return result

    except Exception as e:
        logger.error("Command failed: %s", e)
        raise
    finally:
        logger.info("=== run end id=%s ===", run_id)
