import os
import logging
from typing import Dict, Optional

import discord
from discord import app_commands
from discord.ext import commands, tasks

from proxbot.client import POWER_ACTIONS, StatusClient
from proxbot.commands import CommandDispatcher, CommandResult
from proxbot.config import AppConfig
from proxbot.embeds import EmbedBuilder
from proxbot.monitor import PresenceMonitor


# ------------------------------
# Logging configuration
# ------------------------------
LOG_FORMAT: str = "[%(asctime)s] [%(levelname)s] %(message)s"
LOG_DATEFMT: str = "%Y-%m-%d %H:%M:%S"

logging.basicConfig(level=logging.INFO, format=LOG_FORMAT, datefmt=LOG_DATEFMT)
logger: logging.Logger = logging.getLogger(__name__)
if os.getenv("DEBUG", "0") == "1":
    logging.getLogger("proxbot").setLevel(logging.DEBUG)
    logger.debug("Debug logging enabled")

STARTUP_PRESENCE: str = "Monitoring proxmox"
PROBING_MESSAGE: str = "Probing the proxmox server..."


def add_file_logging(log_file: str) -> None:
    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT))
    logging.getLogger().addHandler(file_handler)
    logger.info("Writing logs to %s", log_file)


# ------------------------------
# Discord Bot
# ------------------------------
class ProxmoxBot(commands.Bot):
    def __init__(
        self,
        config: AppConfig,
        status_client: StatusClient,
        dispatcher: CommandDispatcher,
        embed_builder: EmbedBuilder,
    ) -> None:
        intents: discord.Intents = discord.Intents.default()
        super().__init__(command_prefix="!", intents=intents)

        self.config = config
        self.status_client = status_client
        self.dispatcher = dispatcher
        self.embed_builder = embed_builder

        self.startup_presence_shown: bool = False

        self.monitor = PresenceMonitor(
            client=status_client,
            update_presence=self.set_presence,
            notify_owner=self.notify_owner if config.owner_id is not None else None,
        )

        # Attach tasks
        self.poll_task = tasks.loop(seconds=config.poll_interval_seconds)(
            self._poll_task
        )
        self.poll_task.before_loop(self._before_poll)

    async def _poll_task(self) -> None:
        await self.monitor.poll()

    async def _before_poll(self) -> None:
        await self.wait_until_ready()

    async def set_presence(self, text: str, available: bool) -> None:
        await self.change_presence(
            activity=discord.Game(name=text),
            status=discord.Status.online if available else discord.Status.dnd,
        )

    async def notify_owner(self, message: str) -> None:
        owner_id: Optional[int] = self.config.owner_id
        if owner_id is None:
            return
        owner = self.get_user(owner_id) or await self.fetch_user(owner_id)
        await owner.send(message)
        logger.info("Sent status message to owner: %s", message)

    async def respond(
        self,
        interaction: discord.Interaction,
        command_name: str,
        subcommand: Optional[str] = None,
        args: Optional[Dict[str, str]] = None,
    ) -> None:
        await interaction.response.send_message(PROBING_MESSAGE)
        result: CommandResult = await self.dispatcher.dispatch(
            command_name, subcommand, args
        )
        embed: discord.Embed = self.embed_builder.build_embed(result)
        try:
            await interaction.edit_original_response(content=None, embed=embed)
        except discord.HTTPException as reply_error:
            logger.warning("Failed to edit reply for /%s: %s", command_name, reply_error)

    def _power_command(self, action: str) -> app_commands.Command:
        async def callback(interaction: discord.Interaction, guest_id: str) -> None:
            await self.respond(interaction, "vm", action, {"id": guest_id})

        callback = app_commands.rename(guest_id="id")(callback)
        callback = app_commands.describe(guest_id="ID of the VM or container")(callback)
        return app_commands.Command(
            name=action,
            description=f"{action.capitalize()} a VM or container",
            callback=callback,
        )

    def _register_commands(self) -> None:
        @app_commands.command(
            name="hostinfo", description="Get information about the proxmox server"
        )
        async def hostinfo(interaction: discord.Interaction) -> None:
            await self.respond(interaction, "hostinfo")

        @app_commands.command(
            name="vminfo", description="List the virtual machines and containers"
        )
        async def vminfo(interaction: discord.Interaction) -> None:
            await self.respond(interaction, "vminfo")

        vm_group = app_commands.Group(
            name="vm", description="Control virtual machines and containers"
        )
        for action in POWER_ACTIONS:
            vm_group.add_command(self._power_command(action))

        self.tree.add_command(hostinfo)
        self.tree.add_command(vminfo)
        self.tree.add_command(vm_group)

    async def setup_hook(self) -> None:
        self._register_commands()

        if self.config.global_commands:
            await self.tree.sync()
            logger.info("Commands registered globally!")
        else:
            guild = discord.Object(id=self.config.testing_guild_id)
            self.tree.copy_global_to(guild=guild)
            await self.tree.sync(guild=guild)
            logger.info("Commands registered in guild %d", self.config.testing_guild_id)

        self.poll_task.start()

    async def on_ready(self) -> None:  # type: ignore[override]
        assert self.user is not None
        logger.info("Logged in as %s", self.user)
        # on_ready fires again after reconnects; from then on the monitor owns presence
        if not self.startup_presence_shown:
            self.startup_presence_shown = True
            await self.set_presence(STARTUP_PRESENCE, available=True)

    async def close(self) -> None:
        self.poll_task.cancel()
        await self.monitor.drain_notifications()
        await super().close()


# ------------------------------
# Main entrypoint
# ------------------------------
def main() -> None:
    config = AppConfig(os.getenv("CONFIG_DIR", "."))
    if config.log_file:
        add_file_logging(config.log_file)

    status_client = StatusClient(
        host=config.proxmox_host,
        user=config.proxmox_user,
        password=config.proxmox_password,
        verify_ssl=config.verify_ssl,
        timeout=config.request_timeout,
    )
    dispatcher = CommandDispatcher(status_client, host_label=config.proxmox_host)
    embed_builder = EmbedBuilder()

    bot = ProxmoxBot(
        config=config,
        status_client=status_client,
        dispatcher=dispatcher,
        embed_builder=embed_builder,
    )
    bot.run(config.token, log_handler=None)


if __name__ == "__main__":
    main()
