from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class AnalysisSettings(BaseSettings):
    max_speed_m_per_s: float = 2.5
    min_observations: int = 10
    include_stroke_effects: bool = True


class SwimSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="SWIM_", env_nested_delimiter="__")

    fit_dir: Path = Path("./data/fit")
    out_dir: Path = Path("./out")
    output_csv: str = "swim_laps.csv"
    database_name: str = "swim_data.duckdb"
    log_level: str = "INFO"
    analysis: AnalysisSettings = AnalysisSettings()

    @property
    def output_csv_path(self) -> Path:
        return self.out_dir / self.output_csv

    @property
    def database_path(self) -> Path:
        return self.out_dir / self.database_name
