"""Canned reply strings and the fixed-phrase matcher."""

from __future__ import annotations

SIGNATURE = "\n  \n🔒 LOCKBOT ACTIVE 🔒\n"
SEPARATOR = "\n ⚜                                        ⚜"

DEFAULT_SENDER_NAME = "User"

# First match wins; matching is a case-insensitive substring test.
PHRASE_REPLIES: tuple[tuple[str, str], ...] = (
    ("good morning", "☀️ Good morning! Locks are up and running."),
    ("good night", "🌙 Good night! I'll keep watch over the group."),
    ("who made you", "😎 I was set up by this group's admin to keep things tidy."),
    ("thank you bot", "🙏 Anytime!"),
)

BOT_RESPONSES: tuple[str, ...] = (
    "😎 Yes? I'm here.",
    "🤖 Still online, still watching the locks.",
    "👀 You called?",
    "🔒 Everything is locked down as ordered.",
    "🙈 Bot, bot, bot... that's me!",
)

ADMIN_MENTION_REPLY = "⚡ The boss has been notified. Your command is active."

AUTO_REPLY_LINES: tuple[str, ...] = (
    "👋 I'm listening.",
    "📝 Noted.",
    "🤖 Beep boop, message received.",
    "😄 Keep it coming!",
)

NON_ADMIN_DENIAL = "🚫 I only take orders from my admin."
PERMISSION_DENIED = "Permission denied, you are not the admin."
UNKNOWN_COMMAND_ADMIN = "Unknown command. My prefix is {prefix} - try {prefix}help."

GROUP_LOCKED = "☠ GROUP NAME LOCKED. Change it all you like, it will come back 😂👍"
GROUP_UNLOCKED = "Group name unlocked successfully."
GROUP_NAME_REMOVED = "Group name removed and kept empty."
GROUP_USAGE = "Use {prefix}group on <name> or {prefix}group off"
GCLOCK_USAGE = "Use correct format: {prefix}gclock <group_name>"

NICKNAMES_LOCKED = "😎 All nicknames locked to: {nickname}"
NICKNAMES_UNLOCKED = "Nickname lock removed."
NICKNAMES_REMOVED = "All nicknames removed and kept empty."
NICKNAME_NOT_LOCKED = "No nickname lock is active here."
MEMBER_NICKNAME_LOCKED = "Nickname of {member} locked to: {nickname}"
NICKNAME_USAGE = "Use {prefix}nickname on <nickname>, {prefix}nickname set <uid|@mention> <nickname> or {prefix}nickname off"

PHOTO_LOCKED = "🖼 Group photo locked."
PHOTO_UNLOCKED = "Group photo unlocked."
PHOTO_USAGE = "Use {prefix}photolock on [image_url] or {prefix}photolock off"

BOTNICK_CHANGED = "Bot nickname changed to: {nickname}"
BOTNICK_USAGE = "Use correct format: {prefix}botnick <nickname>"

FIGHT_ON = "🔥 Auto-reply mode enabled for this group."
FIGHT_OFF = "Auto-reply mode disabled."
FIGHT_USAGE = "Use {prefix}fyt on or {prefix}fyt off"
TARGET_ON = "🎯 Now replying to every message from {target}."
TARGET_OFF = "Target cleared."
TARGET_USAGE = "Use {prefix}target on <uid|@mention> or {prefix}target off"
STOPPED = "⏹ Auto-replies stopped for this group."

ACTION_FAILED = "⚠️ The lock is set, but the platform rejected the change: {error}"

HELP_TEXT = """Commands:
{prefix}group on <name> | {prefix}group off - lock/unlock group name
{prefix}gclock <name> - lock group name
{prefix}gcremove - remove group name and keep it empty
{prefix}nickname on <name> | {prefix}nickname off - lock/unlock nicknames
{prefix}nickname set <uid|@mention> <name> - lock one member's nickname
{prefix}nicklock on <name> | {prefix}nicklock off - same as nickname
{prefix}nickremoveall | {prefix}nickremoveoff - remove all nicknames / stop removing
{prefix}photolock on [url] | {prefix}photolock off - lock/unlock group photo
{prefix}botnick <name> - change the bot's nickname
{prefix}fyt on|off - auto-reply to every message
{prefix}target on <uid|@mention> | {prefix}target off - auto-reply to one member
{prefix}stop - stop auto-replies
{prefix}tid | {prefix}uid - show group id / user id
{prefix}status - bot status
{prefix}help - this list"""


def match_phrase(text: str) -> str | None:
    """Return the first canned reply whose trigger occurs in ``text``."""
    lowered = text.lower()
    for trigger, reply in PHRASE_REPLIES:
        if trigger in lowered:
            return reply
    return None
