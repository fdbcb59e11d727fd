import os
from typing import Any, Dict


DEFAULT_SUPPORT_MESSAGES: Dict[str, str] = {
    "critical": (
        "Hi there. I noticed you might be going through something really difficult right now. "
        "Your safety matters. Please consider reaching out to a crisis line or someone you trust."
    ),
    "high": (
        "Hi there. I noticed you might be having a tough time, and it's okay to not be okay. "
        "I'm here if you want to talk."
    ),
    "medium": "Hi there. Remember that it's completely okay to ask for help when you need it.",
    "low": "Hi there. I'm here to listen if you need to talk.",
}

DEFAULT_WARNING_MESSAGE = "Your message was flagged for inappropriate content. Please review our server rules."


class SafetySettings:
    """Typed accessors for the ``safety`` section of the app configuration.

    Values are coerced on read so a hand-edited YAML file with quoted numbers
    still behaves. Missing keys fall back to the defaults documented on each
    property.
    """

    def __init__(self, data: Dict[str, Any] | None = None) -> None:
        self.data: Dict[str, Any] = data or {}

    def get(self, key: str, default: Any = None) -> Any:
        """Return the value for `key` or `default` if missing."""
        return self.data.get(key, default)

    def as_dict(self) -> Dict[str, Any]:
        return self.data

    def _timeouts(self) -> Dict[str, Any]:
        value = self.data.get("timeouts", {})
        return value if isinstance(value, dict) else {}

    @property
    def policy_read_timeout(self) -> float:
        return float(self._timeouts().get("policy_read_seconds", 2.0))

    @property
    def classifier_timeout(self) -> float:
        return float(self._timeouts().get("classifier_seconds", 5.0))

    @property
    def persistence_timeout(self) -> float:
        return float(self._timeouts().get("persistence_seconds", 5.0))

    @property
    def action_timeout(self) -> float:
        return float(self._timeouts().get("action_seconds", 10.0))

    @property
    def behavior_cache_size(self) -> int:
        return int(self.data.get("behavior_cache_size", 10_000))

    @property
    def system_actor_id(self) -> int:
        """Moderator id recorded on automated moderation actions."""
        return int(self.data.get("system_actor_id", 0))

    @property
    def mute_duration_seconds(self) -> float:
        return float(self.data.get("mute_duration_seconds", 3600))

    @property
    def dm_sensitivity(self) -> str:
        return str(self.data.get("dm_sensitivity", "medium")).lower()

    @property
    def support_messages(self) -> Dict[str, str]:
        value = self.data.get("support_messages", {})
        merged = dict(DEFAULT_SUPPORT_MESSAGES)
        if isinstance(value, dict):
            merged.update({str(k).lower(): str(v) for k, v in value.items() if v})
        return merged

    @property
    def warning_message(self) -> str:
        return str(self.data.get("warning_message") or DEFAULT_WARNING_MESSAGE)


class ClassifierSettings:
    """Typed accessors for the external moderation classifier."""

    def __init__(self, data: Dict[str, Any] | None = None) -> None:
        self.data: Dict[str, Any] = data or {}

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    @property
    def model_name(self) -> str:
        return str(self.data.get("model_name") or "omni-moderation-latest")

    @property
    def base_url(self) -> str | None:
        val = self.data.get("base_url")
        return str(val) if val else None

    @property
    def api_key(self) -> str | None:
        val = self.data.get("api_key") or os.getenv("OPENAI_API_KEY")
        return str(val) if val else None
