"""
HTML for the drop-zone upload widget.

Each widget carries its own configuration in a ``data-config`` attribute,
so several widgets on one page never share settings. Callbacks are passed
as a map of drop-zone event name to the name of a handler registered on the
page; no code is ever built from configuration text.
"""
import html
import json
import logging
import re
from typing import Any, Dict, Optional

from dropzone_upload.schemas.widget import WidgetConfig

logger = logging.getLogger(__name__)

LOGIN_REQUIRED_DESC = "Please login to upload files."

DROPZONE_EVENTS = frozenset({
    "drop", "dragstart", "dragend", "dragenter", "dragover", "dragleave", "paste",
    "reset", "addedfile", "addedfiles", "removedfile", "thumbnail",
    "error", "errormultiple", "processing", "processingmultiple",
    "uploadprogress", "totaluploadprogress", "sending", "sendingmultiple",
    "success", "successmultiple", "canceled", "canceledmultiple",
    "complete", "completemultiple", "maxfilesexceeded", "maxfilesreached", "queuecomplete",
})

_HANDLER_NAME = re.compile(r"^[A-Za-z_$][\w$]*(\.[A-Za-z_$][\w$]*)*$")


def parse_callbacks(value: str) -> Dict[str, str]:
    """Parse ``"success: onDone, error: app.onFail"`` into an event map."""
    callbacks: Dict[str, str] = {}
    for item in value.split(","):
        item = item.strip()
        if not item:
            continue
        event, sep, handler = item.partition(":")
        event, handler = event.strip(), handler.strip()
        if not sep or event not in DROPZONE_EVENTS or not _HANDLER_NAME.match(handler):
            logger.warning(f"Ignoring widget callback {item!r}")
            continue
        callbacks[event] = handler
    return callbacks


def minify_css(css: str) -> str:
    css = re.sub(r"\s*([{}|:;,])\s*", r"\1", css)
    css = css.replace(";}", "}")
    css = re.sub(r"\s\s+", " ", css)
    return css.strip()


def widget_css(config: WidgetConfig) -> str:
    selector = f".dropzone-{config.id}"
    rules = [
        ("border-width", config.border_width),
        ("border-style", config.border_style),
        ("border-color", config.border_color),
        ("background", config.background),
        ("margin-bottom", config.margin_bottom),
    ]
    css = selector + " {" + "".join(f"{prop}: {value};" for prop, value in rules if value) + "}"
    if config.thumbnail_width and config.thumbnail_height:
        css += (
            f"{selector} .dz-preview .dz-image {{"
            f" width: 100%; max-width: {config.thumbnail_width}px;"
            f" height: auto; max-height: {config.thumbnail_height}px; }}"
        )
    return minify_css(css)


def build_client_config(
    config: WidgetConfig,
    upload_url: str,
    nonce: Optional[str],
    logged_in: bool,
    max_file_size_mb: float,
    chunk_size: int,
) -> Dict[str, Any]:
    return {
        "upload_url": upload_url,
        "nonce": nonce or "",
        "is_user_logged_in": logged_in,
        "id": config.id,
        "callbacks": parse_callbacks(config.callback),
        "title": config.title,
        "desc": config.desc,
        "max_file_size": config.max_file_size or max_file_size_mb,
        "remove_links": config.remove_links,
        "clickable": config.clickable,
        "accepted_files": config.accepted_files,
        "max_files": config.max_files,
        "max_files_alert": config.max_files_alert,
        "auto_process": config.auto_process,
        "dom_id": config.dom_id,
        "resize_width": config.resize_width,
        "resize_height": config.resize_height,
        "resize_quality": config.resize_quality,
        "resize_method": config.resize_method,
        "thumbnail_width": config.thumbnail_width,
        "thumbnail_height": config.thumbnail_height,
        "thumbnail_method": config.thumbnail_method,
        "chunking": True,
        "chunk_size": chunk_size,
    }


def render_widget(
    config: WidgetConfig,
    upload_url: str,
    nonce: Optional[str],
    logged_in: bool,
    max_file_size_mb: float,
    chunk_size: int,
) -> str:
    if not logged_in:
        config = config.model_copy(update={"desc": LOGIN_REQUIRED_DESC})
        nonce = None

    client_config = build_client_config(config, upload_url, nonce, logged_in, max_file_size_mb, chunk_size)
    widget_id = html.escape(config.id)

    parts = [
        f'<div class="dropzone dropzone-{widget_id}" id="wp-dz-{widget_id}"'
        f' data-config="{html.escape(json.dumps(client_config), quote=True)}">'
    ]
    if config.title or config.desc:
        parts.append(
            '<div class="dz-message">'
            f'<h3 class="dropzone-title">{html.escape(config.title)}</h3>'
            f'<p class="dropzone-note">{html.escape(config.desc)}</p>'
            '<div class="dropzone-mobile-trigger needsclick"></div>'
            "</div>"
        )
    parts.append("</div>")
    parts.append(f"<style>{widget_css(config)}</style>")

    if not config.auto_process:
        parts.append(
            f'<button type="button" class="process-upload" id="process-{widget_id}">'
            f"{html.escape(config.upload_button_text)}</button>"
        )
    return "".join(parts)
