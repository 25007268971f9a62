from mafia.config.config_loader import load_game_rules
from mafia.config.config_validator import ConfigValidator
from mafia.config.server_env import ServerSettings, load_server_settings

__all__ = ["load_game_rules", "ConfigValidator", "ServerSettings", "load_server_settings"]
