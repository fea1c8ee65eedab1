from constants import *
import copy
import yaml
import os

import logging

# Retrieve main logger
logger = logging.getLogger("main")


def _env_overrides(settings):
    """Apply deployment secrets and switches from the environment"""
    token = os.environ.get("BOT_TOKEN")
    if token:
        settings["bot"]["token"] = token

    admin_ids = os.environ.get("ADMIN_IDS")
    if admin_ids:
        parsed = []
        for raw in admin_ids.split(","):
            raw = raw.strip()
            if raw.lstrip("-").isdigit():
                parsed.append(int(raw))
            elif raw:
                logger.warning(f"Ignoring invalid admin id in ADMIN_IDS: {raw}")
        settings["bot"]["admin_ids"] = parsed

    secret = os.environ.get("WEBHOOK_SECRET")
    if secret:
        settings["bot"]["webhook_secret"] = secret

    redis_url = os.environ.get("REDIS_URL")
    if redis_url:
        settings["catalog"]["redis_url"] = redis_url

    maintenance = os.environ.get("MAINTENANCE_MODE")
    if maintenance is not None:
        settings["bot"]["maintenance"] = maintenance.lower() == "true"

    return settings


def merge_settings(overrides):
    """Deep merge a (partial) settings dict over the defaults"""
    merged_settings = copy.deepcopy(DEFAULT_SETTINGS)
    for section, values in (overrides or {}).items():
        if isinstance(values, dict) and section in merged_settings and isinstance(merged_settings[section], dict):
            merged_settings[section].update(values)
        else:
            merged_settings[section] = values
    return merged_settings


# Cache variable
_cached_settings = None


def load_settings(force=False, config_file=CONFIG_FILE):
    global _cached_settings

    if _cached_settings and not force:
        return _cached_settings

    if os.path.exists(config_file):
        logger.debug(f"Reading configuration file: {config_file}")
        with open(config_file, "r") as yaml_file:
            settings = merge_settings(yaml.safe_load(yaml_file) or {})
    else:
        settings = copy.deepcopy(DEFAULT_SETTINGS)
        os.makedirs(os.path.dirname(config_file), exist_ok=True)
        with open(config_file, "w") as yaml_file:
            yaml.dump(settings, yaml_file)
        logger.info(f"Default configuration written to {config_file}")

    settings = _env_overrides(settings)

    _cached_settings = settings
    return settings


def verify_settings(settings):
    success = True
    errors = []

    if not settings["bot"].get("token"):
        success = False
        errors.append({"path": "bot/token", "error": "Bot token is not configured."})

    public_ids = {int(c["id"]) for c in settings["channels"].get("public", [])}
    private_ids = {int(c["id"]) for c in settings["channels"].get("private", [])}
    overlap = public_ids & private_ids
    if overlap:
        success = False
        errors.append({"path": "channels", "error": f"Channels configured as both public and private: {sorted(overlap)}"})

    for section, key in [
        ("catalog", "buffer_size"),
        ("catalog", "cache_expiry"),
        ("catalog", "items_per_page"),
        ("requests", "max_per_day"),
        ("requests", "duplicate_window_hours"),
    ]:
        if settings[section].get(key, 0) <= 0:
            success = False
            errors.append({"path": f"{section}/{key}", "error": "Value must be positive."})

    return success, errors


def storage_path(settings, key, data_dir=None):
    """Absolute path of a ledger file named in the storage section"""
    return os.path.join(data_dir or DATA_DIR, settings["storage"][key])


def reload_conf():
    """Reload application settings cache"""
    global _cached_settings
    _cached_settings = None
    return load_settings(force=True)
