"""Chat command parsing, routing and quick replies."""

from __future__ import annotations

import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from loguru import logger

from lockbot.core import replies
from lockbot.core.actions import ActionResult, ActionRunner
from lockbot.core.groups import JoinedGroupSet
from lockbot.core.models import (
    BotSettings,
    CommandContext,
    GroupId,
    Mention,
    OutgoingMessage,
    PlatformEvent,
    UserId,
)
from lockbot.core.policy import PolicyEnforcementEngine
from lockbot.core.telemetry import InMemoryTelemetry

if TYPE_CHECKING:
    from lockbot.core.session import SessionManager

type CommandHandler = Callable[[CommandContext], Awaitable[str]]


@dataclass(frozen=True, slots=True)
class CommandSpec:
    name: str
    handler: CommandHandler
    admin_only: bool = True


@dataclass(slots=True)
class AutoReplySession:
    """Per-group auto-reply toggles."""

    fight: bool = False
    target_id: UserId | None = None
    cursor: int = 0

    @property
    def active(self) -> bool:
        return self.fight or self.target_id is not None


def _failure_note(results: list[ActionResult] | ActionResult | None) -> str:
    if results is None:
        return ""
    if isinstance(results, ActionResult):
        results = [results]
    failed = [r for r in results if not r.ok]
    if not failed:
        return ""
    return "\n" + replies.ACTION_FAILED.format(error=failed[0].error)


class CommandProcessor:
    """Turns chat messages into lock changes and reply text.

    Prefixed messages are commands; everything else goes through the quick
    reply chain (admin mention, phrase table, ``bot``, auto-reply sessions).
    Only the text is produced here; :meth:`handle_event` formats and sends it.
    """

    def __init__(
        self,
        *,
        engine: PolicyEnforcementEngine,
        actions: ActionRunner,
        settings: BotSettings,
        groups: JoinedGroupSet,
        session_manager: SessionManager | None = None,
        telemetry: InMemoryTelemetry | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.engine = engine
        self._actions = actions
        self._settings = settings
        self._groups = groups
        self.session_manager = session_manager
        self._telemetry = telemetry or InMemoryTelemetry()
        self._rng = rng or random.Random()
        self.auto_replies: dict[GroupId, AutoReplySession] = {}
        self._commands: dict[str, CommandSpec] = {}

        for spec in (
            CommandSpec("group", self._cmd_group),
            CommandSpec("gclock", self._cmd_gclock),
            CommandSpec("gcremove", self._cmd_gcremove),
            CommandSpec("nickname", self._cmd_nickname),
            CommandSpec("nicklock", self._cmd_nickname),
            CommandSpec("nickremoveall", self._cmd_nickremoveall),
            CommandSpec("nickremoveoff", self._cmd_nickremoveoff),
            CommandSpec("photolock", self._cmd_photolock),
            CommandSpec("botnick", self._cmd_botnick),
            CommandSpec("fyt", self._cmd_fyt),
            CommandSpec("target", self._cmd_target),
            CommandSpec("stop", self._cmd_stop),
            CommandSpec("status", self._cmd_status),
            CommandSpec("tid", self._cmd_tid, admin_only=False),
            CommandSpec("uid", self._cmd_uid, admin_only=False),
            CommandSpec("help", self._cmd_help, admin_only=False),
        ):
            self._commands[spec.name] = spec

    @property
    def command_names(self) -> list[str]:
        return sorted(self._commands)

    async def handle_event(self, event: PlatformEvent) -> str | None:
        """Process one chat message and send the formatted reply, if any."""
        reply = await self.process(event)
        if reply:
            message = await self.format_reply(event.author_id, reply)
            await self._actions.send_message(message, event.group_id)
        return reply

    async def process(self, event: PlatformEvent) -> str | None:
        text = event.body.strip()
        prefix = self._settings.prefix
        if text.startswith(prefix):
            ctx = self._parse(event, text[len(prefix):])
            if ctx is not None:
                return await self.execute(ctx)
            return None
        return self._quick_reply(event, text)

    def _parse(self, event: PlatformEvent, remainder: str) -> CommandContext | None:
        tokens = remainder.split()
        if not tokens:
            return None
        return CommandContext(
            sender_id=event.author_id,
            group_id=event.group_id,
            raw_text=event.body,
            command=tokens[0].lower(),
            args=tuple(tokens[1:]),
            is_admin=self._settings.is_admin(event.author_id),
            mentions=dict(event.mentions),
        )

    async def execute(self, ctx: CommandContext) -> str:
        spec = self._commands.get(ctx.command)
        if spec is None:
            if ctx.is_admin:
                return replies.UNKNOWN_COMMAND_ADMIN.format(prefix=self._settings.prefix)
            return replies.NON_ADMIN_DENIAL
        if spec.admin_only and not ctx.is_admin:
            self._telemetry.incr("command_denied", labels=(("command", spec.name),))
            logger.info(f"Denied {spec.name} for non-admin {ctx.sender_id} in {ctx.group_id}")
            return replies.PERMISSION_DENIED

        self._telemetry.incr("command", labels=(("command", spec.name),))
        try:
            return await spec.handler(ctx)
        except ValueError as e:
            logger.debug(f"Rejected {spec.name} in {ctx.group_id}: {e}")
            return f"{e}.\n{self._usage(spec.name)}"

    def _usage(self, name: str) -> str:
        usage = {
            "group": replies.GROUP_USAGE,
            "gclock": replies.GCLOCK_USAGE,
            "nickname": replies.NICKNAME_USAGE,
            "nicklock": replies.NICKNAME_USAGE,
            "photolock": replies.PHOTO_USAGE,
            "botnick": replies.BOTNICK_USAGE,
            "fyt": replies.FIGHT_USAGE,
            "target": replies.TARGET_USAGE,
        }.get(name, replies.HELP_TEXT)
        return usage.format(prefix=self._settings.prefix)

    # Quick replies

    def _quick_reply(self, event: PlatformEvent, text: str) -> str | None:
        if not text or event.author_id == self._actions.current_user_id():
            return None
        if self._settings.admin_id and self._settings.admin_id in event.mentions:
            return replies.ADMIN_MENTION_REPLY
        phrase = replies.match_phrase(text)
        if phrase is not None:
            return phrase
        if text.lower() == "bot":
            return self._rng.choice(replies.BOT_RESPONSES)

        session = self.auto_replies.get(event.group_id)
        if session is None or not session.active:
            return None
        if session.fight or session.target_id == event.author_id:
            line = replies.AUTO_REPLY_LINES[session.cursor % len(replies.AUTO_REPLY_LINES)]
            session.cursor += 1
            return line
        return None

    async def format_reply(self, sender_id: UserId, text: str) -> OutgoingMessage:
        """Prefix the sender's name as a mention and append the signature block."""
        result = await self._actions.get_user_name(sender_id)
        name = result.value if result.ok and result.value else replies.DEFAULT_SENDER_NAME
        header = f" ⚜ {name}⚜\n"
        return OutgoingMessage(
            body=f"{header}\n{text}{replies.SIGNATURE}{replies.SEPARATOR}",
            mentions=(Mention(tag=name, id=sender_id, from_index=header.index(name)),),
        )

    # Title

    async def _cmd_group(self, ctx: CommandContext) -> str:
        sub, rest = self._split_sub(ctx)
        if sub == "on":
            result = await self.engine.lock_title(ctx.group_id, rest)
            return replies.GROUP_LOCKED + _failure_note(result)
        if sub == "off":
            self.engine.unlock_title(ctx.group_id)
            return replies.GROUP_UNLOCKED
        return self._usage("group")

    async def _cmd_gclock(self, ctx: CommandContext) -> str:
        if not ctx.argument_text:
            return self._usage("gclock")
        result = await self.engine.lock_title(ctx.group_id, ctx.argument_text)
        return replies.GROUP_LOCKED + _failure_note(result)

    async def _cmd_gcremove(self, ctx: CommandContext) -> str:
        result = await self.engine.remove_title(ctx.group_id)
        return replies.GROUP_NAME_REMOVED + _failure_note(result)

    # Nicknames

    async def _cmd_nickname(self, ctx: CommandContext) -> str:
        sub, rest = self._split_sub(ctx)
        if sub == "on":
            results = await self.engine.lock_nicknames(ctx.group_id, rest)
            return replies.NICKNAMES_LOCKED.format(nickname=rest.strip()) + _failure_note(results)
        if sub == "off":
            if not self.engine.unlock_nicknames(ctx.group_id):
                return replies.NICKNAME_NOT_LOCKED
            return replies.NICKNAMES_UNLOCKED
        if sub == "set":
            member_id, nickname = self._member_and_text(ctx, rest)
            result = await self.engine.lock_member_nickname(ctx.group_id, member_id, nickname)
            text = replies.MEMBER_NICKNAME_LOCKED.format(member=member_id, nickname=nickname)
            return text + _failure_note(result)
        return self._usage("nickname")

    async def _cmd_nickremoveall(self, ctx: CommandContext) -> str:
        results = await self.engine.remove_all_nicknames(ctx.group_id)
        return replies.NICKNAMES_REMOVED + _failure_note(results)

    async def _cmd_nickremoveoff(self, ctx: CommandContext) -> str:
        if not self.engine.unlock_nicknames(ctx.group_id):
            return replies.NICKNAME_NOT_LOCKED
        return replies.NICKNAMES_UNLOCKED

    # Photo

    async def _cmd_photolock(self, ctx: CommandContext) -> str:
        sub, rest = self._split_sub(ctx)
        if sub == "on":
            result = await self.engine.lock_photo(ctx.group_id, rest or None)
            return replies.PHOTO_LOCKED + _failure_note(result)
        if sub == "off":
            self.engine.unlock_photo(ctx.group_id)
            return replies.PHOTO_UNLOCKED
        return self._usage("photolock")

    # Bot identity and lookups

    async def _cmd_botnick(self, ctx: CommandContext) -> str:
        nickname = ctx.argument_text
        if not nickname:
            return self._usage("botnick")
        if self.session_manager is not None:
            await self.session_manager.apply_bot_nickname(nickname)
        else:
            self._settings.bot_nickname = nickname
        return replies.BOTNICK_CHANGED.format(nickname=nickname)

    async def _cmd_tid(self, ctx: CommandContext) -> str:
        return f"Group ID: {ctx.group_id}"

    async def _cmd_uid(self, ctx: CommandContext) -> str:
        if ctx.mentions:
            return f"User ID: {next(iter(ctx.mentions))}"
        return f"Your ID: {ctx.sender_id}"

    async def _cmd_help(self, ctx: CommandContext) -> str:
        return replies.HELP_TEXT.format(prefix=self._settings.prefix)

    async def _cmd_status(self, ctx: CommandContext) -> str:
        lines = ["🤖 Bot status"]
        if self.session_manager is not None:
            manager = self.session_manager
            lines.append(f"Session: {manager.state}")
            lines.append(f"Reconnect attempts: {manager.reconnect.attempts}")
        lines.append(f"Joined groups: {len(self._groups)}")
        lines.append(f"Locked groups: {len(self.engine.store)}")
        policy = self.engine.store.get(ctx.group_id)
        if policy is None:
            lines.append("This group: no locks")
        else:
            lines.extend(f"This group {line}" for line in policy.describe())
        session = self.auto_replies.get(ctx.group_id)
        if session is not None and session.active:
            lines.append(f"Auto-reply: {'all messages' if session.fight else 'target ' + str(session.target_id)}")
        return "\n".join(lines)

    # Auto-reply sessions

    def _session(self, group_id: GroupId) -> AutoReplySession:
        return self.auto_replies.setdefault(group_id, AutoReplySession())

    async def _cmd_fyt(self, ctx: CommandContext) -> str:
        sub = ctx.args[0].lower() if ctx.args else ""
        if sub == "on":
            self._session(ctx.group_id).fight = True
            return replies.FIGHT_ON
        if sub == "off":
            self._session(ctx.group_id).fight = False
            self._drop_idle_session(ctx.group_id)
            return replies.FIGHT_OFF
        return self._usage("fyt")

    async def _cmd_target(self, ctx: CommandContext) -> str:
        sub, rest = self._split_sub(ctx)
        if sub == "on":
            member_id, _ = self._member_and_text(ctx, rest)
            self._session(ctx.group_id).target_id = member_id
            return replies.TARGET_ON.format(target=member_id)
        if sub == "off":
            self._session(ctx.group_id).target_id = None
            self._drop_idle_session(ctx.group_id)
            return replies.TARGET_OFF
        return self._usage("target")

    async def _cmd_stop(self, ctx: CommandContext) -> str:
        self.auto_replies.pop(ctx.group_id, None)
        return replies.STOPPED

    def _drop_idle_session(self, group_id: GroupId) -> None:
        session = self.auto_replies.get(group_id)
        if session is not None and not session.active:
            del self.auto_replies[group_id]

    # Argument helpers

    @staticmethod
    def _split_sub(ctx: CommandContext) -> tuple[str, str]:
        if not ctx.args:
            return "", ""
        return ctx.args[0].lower(), " ".join(ctx.args[1:]).strip()

    @staticmethod
    def _member_and_text(ctx: CommandContext, rest: str) -> tuple[UserId, str]:
        """Resolve ``<uid|@mention> [text]`` to a member id and the trailing text."""
        if ctx.mentions:
            member_id, tag = next(iter(ctx.mentions.items()))
            bare = tag.lstrip("@")
            for candidate in (f"@{bare}", bare):
                if candidate and candidate in rest:
                    rest = rest.replace(candidate, "", 1)
                    break
            return member_id, rest.strip().lstrip("@").strip()

        parts = rest.split(maxsplit=1)
        if not parts:
            raise ValueError("a member id or mention is required")
        return parts[0], parts[1].strip() if len(parts) > 1 else ""
