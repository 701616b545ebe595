from __future__ import annotations

from typing import Any, Dict, Optional

import asyncio
import logging

import discord
from github import Auth, Github, GithubException
from redbot.core import commands, Config
from redbot.core.bot import Red

from .config import DEFAULT_GLOBAL_CONFIG
from .discord_actions import DiscordActions
from .discord_handlers import DiscordHandlersMixin
from .github_actions import GitHubActions
from .github_handlers import GitHubHandlersMixin
from .store import ThreadStore
from .webhook import WebhookServer


class ForumSync(DiscordHandlersMixin, GitHubHandlersMixin, commands.Cog):
    """
    Keep a Discord forum channel and a GitHub repository's issues in sync.

    - A forum post mirrors an issue; its first message becomes the issue body
    - Later messages become issue comments, and GitHub comments are posted back
    - Closed/reopened, locked/unlocked and labels follow GitHub into Discord
    - Forum tags follow Discord into GitHub labels
    - Prevents feedback loops: everything written to GitHub links back to its
      Discord message, and those links are never mirrored again
    - Nothing is persisted; the thread registry is rebuilt from GitHub on load
    """

    __version__ = "1.0.0"

    def __init__(self, bot: Red) -> None:
        self.bot = bot
        self.config = Config.get_conf(self, identifier=908039527271104515, force_registration=True)
        self.config.register_global(**DEFAULT_GLOBAL_CONFIG)
        self.log = logging.getLogger("red.forum_sync")

        self.store = ThreadStore()
        self.discord = DiscordActions(bot, self.store)
        self.github: Optional[GitHubActions] = None
        # None until the bridge is running; every Discord handler checks it.
        self.forum_channel_id: Optional[int] = None
        self.webhook: Optional[WebhookServer] = None
        self._start_task: Optional[asyncio.Task] = None

    # ----------------------
    # Lifecycle
    # ----------------------
    async def cog_load(self) -> None:
        self._start_task = asyncio.create_task(self._start())

    async def cog_unload(self) -> None:
        if self._start_task and not self._start_task.done():
            self._start_task.cancel()
        await self._stop()

    async def _start(self) -> None:
        await self.bot.wait_until_red_ready()
        conf = await self.config.all()
        repo = await self._get_repo(conf)
        if repo is None or not conf["forum_channel"]:
            self.log.warning("ForumSync is not configured yet, see the forumsyncset command")
            return

        self.github = GitHubActions(repo, conf["github_token"], self.store.vocabulary)
        self.forum_channel_id = conf["forum_channel"]
        await self.handle_ready()

        self.webhook = WebhookServer(
            self.handle_github_event, secret=conf["webhook_secret"], path=conf["webhook_path"]
        )
        try:
            await self.webhook.start(conf["webhook_host"], conf["webhook_port"])
        except OSError:
            self.log.exception("Failed to start webhook listener on %s:%s", conf["webhook_host"], conf["webhook_port"])
            self.webhook = None

    async def _stop(self) -> None:
        self.forum_channel_id = None
        if self.webhook is not None:
            await self.webhook.stop()
            self.webhook = None

    async def _restart(self) -> None:
        if self._start_task and not self._start_task.done():
            self._start_task.cancel()
        await self._stop()
        self._start_task = asyncio.create_task(self._start())

    async def _get_repo(self, conf: Dict[str, Any]):
        token = conf["github_token"]
        owner, name = conf["github_owner"], conf["github_repo"]
        if not token or not owner or not name:
            return None
        gh = Github(auth=Auth.Token(token))
        try:
            self.log.debug("Fetching repo %s/%s", owner, name)
            return await asyncio.to_thread(lambda: gh.get_repo(f"{owner}/{name}"))
        except GithubException:
            self.log.exception("Failed to fetch repo %s/%s", owner, name)
            return None

    # ----------------------
    # Configuration Commands
    # ----------------------
    @commands.group(name="forumsyncset")
    @commands.is_owner()
    async def forumsyncset(self, ctx: commands.Context) -> None:
        """Configure Forum Sync."""

    @forumsyncset.command(name="token")
    async def forumsyncset_token(self, ctx: commands.Context, token: str) -> None:
        """Set the GitHub Personal Access Token (issues read/write)."""
        try:
            gh = Github(auth=Auth.Token(token))
            await asyncio.to_thread(lambda: gh.get_user().login)
        except GithubException:
            self.log.warning("GitHub token validation failed")
            await ctx.send("❌ Token validation failed.")
            return
        await self.config.github_token.set(token)
        await ctx.send("✅ GitHub token set.")
        try:
            await ctx.message.delete()
        except discord.HTTPException:
            pass
        await self._restart()

    @forumsyncset.command(name="repo")
    async def forumsyncset_repo(self, ctx: commands.Context, owner: str, repo: str) -> None:
        """Set the GitHub repository as OWNER REPO (space separated)."""
        await self.config.github_owner.set(owner)
        await self.config.github_repo.set(repo)
        await ctx.send(f"✅ Repository set to `{owner}/{repo}`.")
        await self._restart()

    @forumsyncset.command(name="forum")
    async def forumsyncset_forum(self, ctx: commands.Context, channel: discord.ForumChannel) -> None:
        """Set the forum channel mirrored to GitHub issues."""
        await self.config.forum_channel.set(channel.id)
        self.log.debug("Forum set: %s (%s)", channel.name, channel.id)
        await ctx.send(f"✅ Forum set to {channel.mention}.")
        await self._restart()

    @forumsyncset.command(name="webhook")
    async def forumsyncset_webhook(
        self, ctx: commands.Context, host: str, port: int, secret: Optional[str] = None
    ) -> None:
        """Set where GitHub webhook deliveries are received, and their secret."""
        await self.config.webhook_host.set(host)
        await self.config.webhook_port.set(port)
        await self.config.webhook_secret.set(secret)
        path = await self.config.webhook_path()
        await ctx.send(f"✅ Listening on `{host}:{port}{path}`. Send `issues` and `issue_comment` events there.")
        if secret:
            try:
                await ctx.message.delete()
            except discord.HTTPException:
                pass
        await self._restart()

    @forumsyncset.command(name="show")
    async def forumsyncset_show(self, ctx: commands.Context) -> None:
        """Show the current Forum Sync configuration."""
        conf = await self.config.all()
        forum = f"<#{conf['forum_channel']}>" if conf["forum_channel"] else "not set"
        bound = sum(1 for thread in self.store if thread.number is not None)
        lines = [
            f"Repository: `{conf['github_owner']}/{conf['github_repo']}`",
            f"Token: {'set' if conf['github_token'] else 'not set'}",
            f"Forum: {forum}",
            f"Webhook: `{conf['webhook_host']}:{conf['webhook_port']}{conf['webhook_path']}`"
            f" (secret {'set' if conf['webhook_secret'] else 'not set'})",
            f"Bridge: {'running' if self.forum_channel_id else 'stopped'}",
            f"Threads: {len(self.store)} ({bound} with issues), tags: {len(self.store.vocabulary)}",
        ]
        await ctx.send("\n".join(lines))

    @forumsyncset.command(name="resync")
    async def forumsyncset_resync(self, ctx: commands.Context) -> None:
        """Rebuild the thread registry from GitHub."""
        if self.forum_channel_id is None:
            await ctx.send("❌ Forum Sync is not running.")
            return
        async with ctx.typing():
            await self.handle_ready()
        await ctx.send(f"✅ Registry rebuilt: {len(self.store)} threads.")

    # ----------------------
    # Discord -> GitHub: listeners
    # ----------------------
    @commands.Cog.listener()
    async def on_thread_create(self, thread: discord.Thread) -> None:
        await self.handle_thread_create(thread)

    @commands.Cog.listener()
    async def on_thread_update(self, before: discord.Thread, after: discord.Thread) -> None:
        await self.handle_thread_update(after)

    @commands.Cog.listener()
    async def on_guild_channel_update(self, before, after) -> None:
        await self.handle_channel_update(after)

    @commands.Cog.listener()
    async def on_message(self, message: discord.Message) -> None:
        await self.handle_message_create(message)

    @commands.Cog.listener()
    async def on_message_edit(self, before: discord.Message, after: discord.Message) -> None:
        await self.handle_message_edit(before, after)

    @commands.Cog.listener()
    async def on_raw_message_delete(self, payload: discord.RawMessageDeleteEvent) -> None:
        await self.handle_message_delete(payload.channel_id, payload.message_id)

    @commands.Cog.listener()
    async def on_raw_thread_delete(self, payload: discord.RawThreadDeleteEvent) -> None:
        await self.handle_thread_delete(payload.thread_id, payload.parent_id)
