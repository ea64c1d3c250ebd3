"""FastAPI bootstrap wiring ReserveWatch monitors."""
from fastapi import FastAPI

from reservewatch.config import DEFAULT_PROJECT, setup_logging, validate_config
from reservewatch.state import status_api
from reservewatch.state.monitor import ReserveMonitor


def create_app(projects=None) -> FastAPI:
    app = FastAPI(title="ReserveWatch API", version="0.1.0")

    projects = projects or [DEFAULT_PROJECT]
    for index, project in enumerate(projects):
        # Monitors evaluate on demand; run_live drives the polling loop
        status_api.register_monitor(ReserveMonitor(project), default=(index == 0))

    status_api.attach_to_app(app)

    return app


validate_config()
setup_logging()
app = create_app()
