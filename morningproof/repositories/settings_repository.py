"""
Settings repository - Data access layer for the singleton Settings row.
"""
from sqlalchemy.orm import Session

from morningproof.models import Settings


class SettingsRepository:
    """Repository for Settings data access"""

    @staticmethod
    def get(db: Session) -> Settings:
        """
        Get the settings row, creating it with defaults on first access.

        Returns:
            Settings object
        """
        settings = db.query(Settings).first()
        if not settings:
            settings = Settings()
            db.add(settings)
            db.commit()
            db.refresh(settings)
        return settings

    @staticmethod
    def save(db: Session, settings: Settings) -> Settings:
        """Commit pending changes on the settings row and reload it"""
        db.commit()
        db.refresh(settings)
        return settings

    @staticmethod
    def delete_all(db: Session) -> int:
        """Remove the settings row (full data reset). Caller commits."""
        return db.query(Settings).delete()
