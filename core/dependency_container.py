from typing import Dict, Any, Optional, TypeVar, Callable
from config.app_config import AppConfig
from core.checkpoint import FileCheckpoint
from core.clock import Clock, SystemClock
from data.db import Database
from data.user_repository import UserRepository
from service.scheduler import TaskScheduler, register_default_tasks
from service.subscription_lifecycle import SubscriptionLifecycleEngine
from service.traffic_reset import TrafficResetEngine
T = TypeVar('T')

class DependencyContainer:
    def __init__(self):
        self._instances: Dict[str, Any] = {}
        self._factories: Dict[str, Callable[[], Any]] = {}
        self._config: Optional[AppConfig] = None

    def register_config(self, config: AppConfig) -> None:
        self._config = config
        self._instances['config'] = config
    def register_singleton(self, name: str, factory: Callable[[], T]) -> None:
        self._factories[name] = factory

    def get(self, name: str) -> T:
        if name in self._instances:
            return self._instances[name]
        if name in self._factories:
            instance = self._factories[name]()
            self._instances[name] = instance
            return instance
        raise KeyError(f"Dependency '{name}' not registered")
    def register_core_dependencies(self) -> None:
        self.register_singleton('clock', self._create_clock)
        self.register_singleton('database', self._create_database)
        self.register_singleton('user_repository', self._create_user_repository)
        self.register_singleton('checkpoint', self._create_checkpoint)
    def register_service_dependencies(self) -> None:
        self.register_singleton('subscription_lifecycle', self._create_subscription_lifecycle)
        self.register_singleton('traffic_reset', self._create_traffic_reset)
        self.register_singleton('scheduler', self._create_scheduler)
    def _create_clock(self) -> Clock:
        return SystemClock(self._config.scheduler.timezone)
    def _create_database(self) -> Database:
        return Database(
            self._config.database.path,
            timeout=self._config.database.timeout,
            pool_size=self._config.database.pool_size
        )
    def _create_user_repository(self) -> UserRepository:
        return UserRepository(
            self.get('database'),
            clock=self.get('clock'),
            default_timeout=self._config.database.operation_timeout
        )
    def _create_checkpoint(self) -> FileCheckpoint:
        return FileCheckpoint(self._config.scheduler.checkpoint_file, self.get('clock'))
    def _create_subscription_lifecycle(self) -> SubscriptionLifecycleEngine:
        return SubscriptionLifecycleEngine(
            self.get('user_repository'),
            self.get('clock'),
            timeout=self._config.scheduler.job_timeout
        )
    def _create_traffic_reset(self) -> TrafficResetEngine:
        return TrafficResetEngine(
            self.get('user_repository'),
            self.get('checkpoint'),
            self.get('clock'),
            timeout=self._config.scheduler.job_timeout
        )
    def _create_scheduler(self) -> TaskScheduler:
        scheduler = TaskScheduler(self._config.scheduler.timezone)
        register_default_tasks(
            scheduler,
            self.get('subscription_lifecycle').run,
            self.get('traffic_reset').run,
            check_subscriptions_cadence=self._config.scheduler.check_subscriptions_cadence,
            reset_traffic_cadence=self._config.scheduler.reset_traffic_cadence
        )
        return scheduler
    def cleanup(self) -> None:
        scheduler = self._instances.get('scheduler')
        if scheduler:
            scheduler.stop()
        database = self._instances.get('database')
        if database:
            database.close_pool()
        self._instances.clear()
        self._factories.clear()
_container = DependencyContainer()
def get_container() -> DependencyContainer:
    return _container
def initialize_container(config: AppConfig) -> None:
    container = get_container()
    container.register_config(config)
    container.register_core_dependencies()
    container.register_service_dependencies()
def get_service(service_name: str) -> Any:
    return get_container().get(service_name)
def cleanup_container() -> None:
    get_container().cleanup()
