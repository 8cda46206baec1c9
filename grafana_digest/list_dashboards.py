import json
import os
import sys
from typing import List

import yaml

from grafana_digest.grafana_api import (
    ConfigurationError,
    DashboardSummary,
    GrafanaDigestError,
    get_dashboard,
    get_description,
    get_user,
    search_dashboards,
)
from grafana_digest.logs import configure_logging, get_logger

log = get_logger(__name__)

CONFIG_PATH = "config/grafana.yaml"

DEFAULTS = {
    "url": "https://pantheon.grafana.net/api",
    "token_env": "GRAFANA_TOKEN",
    "folders_to_ignore": ["scratch", "dev"],
    "strict_json": False,
    "timeout_sec": None,
}


def get_config(path: str = None) -> dict:
    """
    Build the client config: defaults, then the `grafana` section of the YAML
    file (if it exists), then GRAFANA_URL. Fails when the token env is unset.
    """
    path = path or os.environ.get("GRAFANA_DIGEST_CONFIG", CONFIG_PATH)
    cfg = dict(DEFAULTS)

    if os.path.exists(path):
        try:
            with open(path) as f:
                section = (yaml.safe_load(f) or {}).get("grafana") or {}
        except (OSError, yaml.YAMLError, AttributeError) as e:
            raise ConfigurationError("get_config", f"cannot load {path}: {e}") from e
        if not isinstance(section, dict):
            raise ConfigurationError("get_config", f"'grafana' in {path} must be a mapping")
        cfg.update(section)

    if os.environ.get("GRAFANA_URL"):
        cfg["url"] = os.environ["GRAFANA_URL"]

    _check_types(cfg, path)

    missing = [env for env in [cfg["token_env"]] if not os.environ.get(env)]
    if missing:
        raise ConfigurationError("get_config", f"missing env variables: {', '.join(missing)}")

    # header values go out as latin-1
    try:
        os.environ[cfg["token_env"]].encode("latin-1")
    except UnicodeEncodeError as e:
        raise ConfigurationError(
            "get_config", f"{cfg['token_env']} contains characters not allowed in an HTTP header"
        ) from e
    return cfg


def _check_types(cfg: dict, path: str) -> None:
    def bad(key, expected):
        raise ConfigurationError(
            "get_config", f"'{key}' in {path} must be {expected}, got {cfg[key]!r}"
        )

    for key in ("url", "token_env"):
        if not isinstance(cfg[key], str) or not cfg[key]:
            bad(key, "a non-empty string")
    folders = cfg["folders_to_ignore"]
    if folders is None:
        cfg["folders_to_ignore"] = []
    elif not isinstance(folders, list) or not all(isinstance(name, str) for name in folders):
        bad("folders_to_ignore", "a list of strings")
    if not isinstance(cfg["strict_json"], bool):
        bad("strict_json", "true or false")
    timeout = cfg["timeout_sec"]
    is_number = isinstance(timeout, (int, float)) and not isinstance(timeout, bool)
    if timeout is not None and not (is_number and timeout > 0):
        bad("timeout_sec", "a positive number or null")


def parse_dashboards(config: dict, dashboards: List[DashboardSummary]) -> List[DashboardSummary]:
    """Drop folders and ignored folders' dashboards, attach descriptions to the rest."""
    ignored = {name.lower() for name in config.get("folders_to_ignore") or []}
    strict = config.get("strict_json", False)
    out = []
    for d in dashboards:
        if d.is_folder():
            continue
        if d.folder_title.lower() in ignored:
            log.debug("skipping dashboard in ignored folder", title=d.title, folder=d.folder_title)
            continue

        log.info("fetching dashboard", title=d.title, uid=d.uid)
        d.description = get_description(get_dashboard(config, d.uid), strict=strict)
        out.append(d)
    return out


def run(argv: List[str]) -> None:
    config = get_config()
    args = argv or ["user"]
    verb = args[0]

    if verb == "user":
        log.debug("performing GET 'user' request")
        print(get_user(config))
    elif verb == "search":
        # default to showing ALL dashboards, otherwise do a fuzzy search
        query = args[1].strip() if len(args) > 1 else "%"
        log.debug("searching dashboards", query=query)
        found = parse_dashboards(config, search_dashboards(config, query))
        print(json.dumps([d.to_dict() for d in found], indent=1))
    else:
        log.debug("fetching single dashboard", uid=verb)
        print(get_dashboard(config, verb))


def main(argv: List[str] = None) -> int:
    configure_logging(os.environ.get("LOG_LEVEL", "INFO"))
    try:
        run(sys.argv[1:] if argv is None else argv)
    except GrafanaDigestError as e:
        log.error(str(e), op=e.op, error=type(e).__name__)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
