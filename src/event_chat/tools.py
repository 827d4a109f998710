"""
The tools the model may call to drive the host UI.

Each handler publishes one event describing the intended effect and returns a
small acknowledgement that is folded into the conversation.
"""

import logging
from typing import Annotated, Literal, Optional

from . import events
from .storage import THEME_KEY
from .tool_registry import ToolContext, ToolRegistry

logger = logging.getLogger(__name__)


def toggle_sidebar(
    ctx: ToolContext,
    action: Annotated[Literal["open", "close"], "Whether to open or close the sidebar"],
):
    """Open or close the sidebar menu. Use this when the user asks to show/hide/open/close the sidebar or menu."""
    ctx.bus.publish(events.SIDEBAR_TOGGLE, {"is_open": action == "open"})
    return {"success": True, "action": action}


def clear_chat(
    ctx: ToolContext,
    confirm: Annotated[bool, "Confirmation to clear the chat"],
):
    """Clear all messages from the chat history. Use this when the user asks to clear, reset, or start a new conversation."""
    if not confirm:
        return {"success": False, "message": "Clear cancelled"}

    ctx.bus.publish(events.CLEAR_CHAT, {"confirm": True})
    if ctx.conversation is not None:
        ctx.conversation.clear()
    return {"success": True, "message": "Chat cleared"}


def change_theme(
    ctx: ToolContext,
    theme: Annotated[
        Literal["light", "dark", "toggle"],
        'The theme to switch to, or "toggle" to switch between them',
    ],
):
    """Change the app theme between light and dark mode. Use this when the user asks to switch theme, enable dark mode, or change appearance."""
    target = theme
    if theme == "toggle":
        current = ctx.preferences.get(THEME_KEY, "light") if ctx.preferences else "light"
        target = "dark" if current == "light" else "light"

    if ctx.preferences is not None:
        ctx.preferences.set(THEME_KEY, target)
    ctx.bus.publish(events.THEME_CHANGE, {"theme": target})
    return {"success": True, "theme": target}


def navigate_to_page(
    ctx: ToolContext,
    page: Annotated[
        Literal["chat", "settings", "form"],
        "Which page to navigate to. chat=home page, settings=settings page, form=form page.",
    ],
):
    """Navigate to a different page in the app. Use this when the user wants to open/go to/view settings, form, or chat pages (full page navigation)."""
    ctx.bus.publish(events.PAGE_NAVIGATE, {"page": page})
    return {"success": True, "page": page}


def open_split_view(
    ctx: ToolContext,
    page: Annotated[
        Literal["settings", "form", "none"],
        'Which page to open in split view. Use "none" to close the split view.',
    ],
):
    """Open a page in split view alongside the chat. Use this when the user specifically mentions "split view" or wants to see a page while staying on chat."""
    is_open = page != "none"
    ctx.bus.publish(events.SPLIT_VIEW_TOGGLE, {"page": page, "is_open": is_open})
    return {"success": True, "page": page, "is_open": is_open}


def fill_form(
    ctx: ToolContext,
    name: Annotated[Optional[str], "The name to fill in the form"] = None,
    email: Annotated[Optional[str], "The email address to fill in the form"] = None,
    message: Annotated[Optional[str], "The message content to fill in the form"] = None,
):
    """Fill in the contact form fields with provided data. Use this when the user wants to add/enter information into the form (name, email, message)."""
    fields = {"name": name, "email": email, "message": message}
    ctx.bus.publish(events.FORM_FILL, fields)
    return {"success": True, "filled": sum(1 for v in fields.values() if v is not None)}


def resize_sidebar(
    ctx: ToolContext,
    size: Annotated[
        Literal["small", "medium", "large"],
        "The size to set the sidebar. small=narrow (16rem), medium=default (20rem), large=wide (24rem)",
    ],
):
    """Change the width/size of the sidebar. Use this when the user wants to make the sidebar bigger, smaller, wider, or narrower."""
    ctx.bus.publish(events.SIDEBAR_RESIZE, {"size": size})
    return {"success": True, "size": size}


DEFAULT_TOOLS = (
    (toggle_sidebar, "toggled the sidebar"),
    (clear_chat, "cleared the chat"),
    (change_theme, "changed the theme"),
    (navigate_to_page, "navigated to the page"),
    (open_split_view, "updated the split view"),
    (fill_form, "filled in the form"),
    (resize_sidebar, "resized the sidebar"),
)


def build_default_registry() -> ToolRegistry:
    """Build, validate and freeze the built-in tool catalogue."""
    registry = ToolRegistry()
    for handler, done_phrase in DEFAULT_TOOLS:
        registry.register(handler, done_phrase=done_phrase)
    registry.freeze()
    logger.debug(f"Registered tools: {registry.get_tool_names()}")
    return registry
