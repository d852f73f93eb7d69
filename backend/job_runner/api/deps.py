from typing import Annotated

from fastapi import Depends, Request

from job_runner.core.config_store import ConfigStore
from job_runner.tasks import TaskDispatcher


def get_config_store(request: Request) -> ConfigStore:
    return request.app.state.config_store


def get_dispatcher(request: Request) -> TaskDispatcher:
    return request.app.state.dispatcher


ConfigStoreDep = Annotated[ConfigStore, Depends(get_config_store)]
DispatcherDep = Annotated[TaskDispatcher, Depends(get_dispatcher)]
