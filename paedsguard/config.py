"""
Runtime configuration.

Values come from environment variables prefixed with ``PAEDSGUARD_`` or a
local ``.env`` file. The clinical tables themselves ship inside the package;
the path settings only exist so a deployment can pin a reviewed, versioned
copy of a table without rebuilding.
"""
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()

PACKAGE_ROOT = Path(__file__).resolve().parent
DATA_DIR = PACKAGE_ROOT / "data"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="PAEDSGUARD_",
        env_file=".env",
        extra="ignore",
    )

    log_level: str = "INFO"
    log_file: Optional[str] = None
    log_color: bool = True

    # Table overrides (None = packaged defaults)
    intervention_rules_path: Optional[Path] = None
    urgency_table_path: Optional[Path] = None
    protocol_catalog_path: Optional[Path] = None
    nrp_rules_path: Optional[Path] = None

    # Patients younger than this are treated as neonates by the age check.
    neonatal_age_years: float = Field(default=0.083, ge=0)

    @property
    def resolved_intervention_rules_path(self) -> Path:
        return self.intervention_rules_path or DATA_DIR / "intervention_rules.json"

    @property
    def resolved_urgency_table_path(self) -> Path:
        return self.urgency_table_path or DATA_DIR / "urgency_table.json"

    @property
    def resolved_protocol_catalog_path(self) -> Path:
        return self.protocol_catalog_path or DATA_DIR / "protocols.json"

    @property
    def resolved_nrp_rules_path(self) -> Path:
        return self.nrp_rules_path or DATA_DIR / "nrp_rules.json"


settings = Settings()
