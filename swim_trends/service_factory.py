from functools import cached_property

from swim_trends.config import SwimSettings
from swim_trends.service.swim_data_service import SwimDataService


class ServiceFactory:
    def __init__(self, settings: SwimSettings):
        self.settings = settings

    @cached_property
    def swim_data_service(self) -> SwimDataService:
        return SwimDataService(self.settings.database_path)
