import threading

from django.apps import AppConfig
from django.conf import settings
from django.utils.module_loading import import_string


class DispatchApiConfig(AppConfig):
    name = "dispatch_api"
    verbose_name = "Dispatch API"

    engine = None
    _engine_lock = threading.Lock()

    def get_engine(self):
        """
        The process-wide DispatchEngine, built on first use from
        settings.DISPATCH_ENGINE_FACTORY.
        """
        if self.engine is None:
            with self._engine_lock:
                if self.engine is None:
                    factory = import_string(settings.DISPATCH_ENGINE_FACTORY)
                    self.engine = factory()
        return self.engine
