"""
Module      : utils
Date        : 2026-10-19
Version     : 1.1.0
Author      : tompsg-git
Description : Gemeinsame Hilfsfunktionen für Konfigurationsladung,
              Umgebungsvariablen, Pfadauflösung und Logging-Setup.
"""

import json
import logging
import os
import sys

log = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s  %(levelname)-8s  %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

# Umgebungsvariable -> Config-Key
ENV_OVERRIDES = {
    "MS_CLIENT_ID": "ms_client_id",
    "MS_TENANT_ID": "ms_tenant_id",
    "MS_AUTH_FLOW": "ms_auth_flow",
    "GRAPH_BASE_URL": "graph_base_url",
}


def load_config(path: str, optional: bool = False) -> dict:
    """Lädt config.json. Fehlt die Datei, wird abgebrochen (oder {} bei optional)."""
    if not os.path.exists(path):
        if optional:
            log.info("Config nicht gefunden (%s), verwende Standardwerte.", path)
            return apply_env_overrides({})
        log.error("Config nicht gefunden: %s", path)
        sys.exit(1)
    with open(path) as f:
        return apply_env_overrides(json.load(f))


def apply_env_overrides(config: dict) -> dict:
    for env_key, config_key in ENV_OVERRIDES.items():
        value = os.environ.get(env_key)
        if value:
            config[config_key] = value
    return config


def resolve_path(path: str, config_path: str) -> str:
    """Löst einen relativen Pfad relativ zur config-Datei auf."""
    if os.path.isabs(path):
        return path
    return os.path.join(os.path.dirname(os.path.abspath(config_path)), path)


def setup_logging(level: str = None):
    level = (level or os.environ.get("LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
        level=getattr(logging, level, logging.INFO),
        stream=sys.stdout,
    )
