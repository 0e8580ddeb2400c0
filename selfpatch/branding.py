"""Centralized branding constants: single source of truth for version."""


class PatcherBranding:
    """Application identity constants."""

    APP_NAME = "SelfPatch"
    PUBLISHER = "SelfPatch"
    VERSION = "1.0.0"

    @classmethod
    def banner(cls) -> str:
        return f"{cls.APP_NAME}  v{cls.VERSION}"

    @classmethod
    def user_agent(cls) -> str:
        return f"{cls.APP_NAME}/{cls.VERSION}"
