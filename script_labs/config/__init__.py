from script_labs.config.settings import settings, Settings, load_settings

__all__ = ["settings", "Settings", "load_settings"]
