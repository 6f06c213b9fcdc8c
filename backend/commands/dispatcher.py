"""Maps command names received from devices or the control API to editor actions."""

import asyncio
import logging
from enum import Enum

from config import RERUN_DELAY
from commands.actions import EditorActions
from connection.errors import UnknownCommand
from connection.ui import Notifier

logger = logging.getLogger(__name__)


class CommandName(str, Enum):
    VIEW_DOCUMENT = "viewDocument"
    DISCONNECT_ALL = "disconnectAll"
    RUN = "run"
    RUN_WITHOUT_ARGUMENTS = "runWithoutArguments"
    RUN_ON_DEVICE = "runOnDevice"
    STOP = "stop"
    STOP_ALL = "stopAll"
    RERUN = "rerun"
    SAVE = "save"
    SAVE_TO_DEVICE = "saveToDevice"
    RUN_PROJECT = "runProject"
    SAVE_PROJECT = "saveProject"
    RERUN_PROJECT = "rerunProject"


class CommandDispatcher:
    """Runs allow-listed commands; anything else is reported and dropped."""

    def __init__(self, actions: EditorActions, notifier: Notifier, rerun_delay: float = RERUN_DELAY) -> None:
        self._actions = actions
        self._notifier = notifier
        self._rerun_delay = rerun_delay
        self._handlers = {
            CommandName.VIEW_DOCUMENT: lambda *params: actions.view_document(),
            CommandName.DISCONNECT_ALL: lambda *params: actions.disconnect_all(),
            CommandName.RUN: actions.run,
            CommandName.RUN_WITHOUT_ARGUMENTS: lambda *params: actions.run_without_arguments(),
            CommandName.RUN_ON_DEVICE: actions.run_on_device,
            CommandName.STOP: actions.stop,
            CommandName.STOP_ALL: lambda *params: actions.stop_all(),
            CommandName.RERUN: actions.rerun,
            CommandName.SAVE: actions.save,
            CommandName.SAVE_TO_DEVICE: actions.save_to_device,
            CommandName.RUN_PROJECT: actions.run_project,
            CommandName.SAVE_PROJECT: actions.save_project,
            CommandName.RERUN_PROJECT: self._rerun_project,
        }

    @staticmethod
    def parse(cmd: str | None) -> CommandName:
        try:
            return CommandName(cmd)
        except ValueError:
            raise UnknownCommand(cmd) from None

    async def _rerun_project(self, *params) -> None:
        await self._actions.stop_all()
        # give the previous run time to terminate
        await asyncio.sleep(self._rerun_delay)
        await self._actions.run(*params)

    async def dispatch(self, cmd: str | None, *params) -> bool:
        """Run ``cmd`` with ``params`` forwarded verbatim.  Returns False for unknown commands."""
        logger.debug(f"Received cmd: {cmd}")
        try:
            name = self.parse(cmd)
        except UnknownCommand as e:
            logger.warning(f"{e}")
            await self._notifier.error(str(e))
            return False

        logger.info(f'Executing received command "{name.value}"')
        await self._handlers[name](*params)
        return True

    async def handle_exec(self, event_type: str, data: dict) -> None:
        """Event handler compatible with CommandIngestServer.on_event()."""
        if event_type != "exec":
            return
        path = data.get("path")
        params = (path,) if path is not None else ()
        await self.dispatch(data.get("cmd"), *params)
