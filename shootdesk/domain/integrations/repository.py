"""Integration repository - per-user OAuth connections and their settings"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...models_google_calendar import Integration
from ...security_utils import decrypt_token, encrypt_token

GOOGLE_CALENDAR = "google-calendar"
GOOGLE_DRIVE = "google-drive"

DEFAULT_CALENDAR_SETTINGS = {"selectedCalendars": ["primary"]}


class IntegrationRepository:
    """Repository for integration database operations"""

    @staticmethod
    def get_integration(db: Session, user_email: str, provider: str) -> Optional[Integration]:
        return (
            db.query(Integration)
            .filter(Integration.user_email == user_email, Integration.provider == provider)
            .first()
        )

    @staticmethod
    def get_user_integrations(db: Session, user_email: str) -> list[Integration]:
        return db.query(Integration).filter(Integration.user_email == user_email).all()

    @staticmethod
    def get_connected_integrations(db: Session, provider: str) -> list[Integration]:
        return (
            db.query(Integration)
            .filter(Integration.provider == provider, Integration.connected.is_(True))
            .all()
        )

    @staticmethod
    def upsert_integration(
        db: Session,
        user_email: str,
        provider: str,
        access_token: Optional[str] = None,
        refresh_token: Optional[str] = None,
        **fields,
    ) -> Integration:
        """
        Create or update an integration row.
        Plain-text tokens are encrypted before they are stored; a missing
        refresh token keeps the previously stored one.
        """
        integration = IntegrationRepository.get_integration(db, user_email, provider)
        if not integration:
            integration = Integration(user_email=user_email, provider=provider)
            db.add(integration)

        if access_token is not None:
            integration.access_token = encrypt_token(access_token)
        if refresh_token is not None:
            integration.refresh_token = encrypt_token(refresh_token)

        for key, value in fields.items():
            if hasattr(integration, key):
                setattr(integration, key, value)

        integration.updated_at = datetime.utcnow()
        db.commit()
        db.refresh(integration)
        return integration

    @staticmethod
    def remove_integration(db: Session, user_email: str, provider: str) -> bool:
        integration = IntegrationRepository.get_integration(db, user_email, provider)
        if not integration:
            return False
        db.delete(integration)
        db.commit()
        return True

    @staticmethod
    def get_access_token(integration: Integration) -> Optional[str]:
        return decrypt_token(integration.access_token)

    @staticmethod
    def get_refresh_token(integration: Integration) -> Optional[str]:
        return decrypt_token(integration.refresh_token)

    @staticmethod
    def get_settings(integration: Optional[Integration]) -> dict:
        """Provider settings, unwrapping the legacy {"data": {...}} layout"""
        if not integration or not isinstance(integration.settings, dict):
            return {}
        settings = integration.settings
        if isinstance(settings.get("data"), dict):
            return settings["data"]
        return settings

    @staticmethod
    def save_settings(db: Session, integration: Integration, settings: dict) -> Integration:
        merged = {**IntegrationRepository.get_settings(integration), **settings}
        integration.settings = merged
        integration.updated_at = datetime.utcnow()
        db.commit()
        db.refresh(integration)
        return integration


def validate_calendar_settings(settings) -> tuple[bool, Optional[str]]:
    """Returns (is_valid, error_message)"""
    if not isinstance(settings, dict):
        return False, "Settings must be an object"

    selected = settings.get("selectedCalendars")
    if not isinstance(selected, list):
        return False, "selectedCalendars must be an array"
    if not selected:
        return False, "At least one calendar must be selected"
    if not all(isinstance(calendar_id, str) and calendar_id.strip() for calendar_id in selected):
        return False, "Calendar IDs must be non-empty strings"

    return True, None
