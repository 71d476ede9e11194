# taskhook/__main__.py
"""
Run a task runtime configured from the environment.

    TASK_MODULES=mytasks.cleanup,mytasks.deploy WEBHOOK_SECRET=... python -m taskhook
"""
from taskhook.config import settings
from taskhook.core.tasks import parse_task_modules, register_task_modules
from taskhook.infra.logging_config import setup_logging, get_logger
from taskhook.runtime import TaskRuntime


def main() -> None:
    setup_logging(level=settings.log_level, use_json=settings.use_json_logs)
    logger = get_logger("taskhook")

    runtime = TaskRuntime(settings=settings)
    modules = register_task_modules(runtime, parse_task_modules(settings.task_modules))
    logger.info(f"Task modules loaded: {modules}")

    runtime.start(settings.port)


if __name__ == "__main__":
    main()
