import logging
import os
import re
from enum import Enum
from typing import Iterable

from dropzone_upload.core.exceptions import DisallowedExtension

logger = logging.getLogger(__name__)

# Never accepted, whatever the configured allow-list says.
DANGEROUS_EXTENSIONS = frozenset({
    # server-side scripts
    "php", "php3", "php4", "php5", "php7", "php8", "phtml", "pht", "phps", "phar", "inc",
    "asp", "aspx", "ascx", "ashx", "asmx", "cer", "jsp", "jspx", "cfm", "cfc", "shtml", "shtm",
    "pl", "pm", "cgi", "py", "pyc", "rb", "lua",
    # shell and interpreter scripts
    "sh", "bash", "zsh", "ksh", "csh", "fish", "bat", "cmd", "ps1", "psm1", "vbs", "vbe",
    "wsf", "wsh", "jse", "scpt",
    # web scripts and active markup
    "js", "mjs", "html", "htm", "xhtml", "svg", "svgz", "swf", "hta",
    # binary executables and installers
    "exe", "com", "scr", "msi", "dll", "so", "dylib", "bin", "elf", "jar", "app", "apk",
    "deb", "rpm", "run",
    # server configuration overrides
    "htaccess", "htpasswd", "ini", "config", "conf",
})

_UNSAFE_CHARS = re.compile(r"[^\w.\-]+")
_REPEATED_DASHES = re.compile(r"-{2,}")


class ExtensionVerdict(str, Enum):
    ALLOWED = "allowed"
    DANGEROUS = "dangerous"
    UNKNOWN = "unknown"


def file_extension(filename: str) -> str:
    name = os.path.basename(filename.replace("\\", "/")).strip()
    if name.startswith(".") and name.count(".") == 1:
        return name[1:].lower()
    return os.path.splitext(name)[1].lstrip(".").lower()


class ExtensionPolicy:
    def __init__(self, allowed_extensions: Iterable[str]):
        self.allowed_extensions = frozenset(ext.lower().lstrip(".") for ext in allowed_extensions)

    def classify(self, filename: str) -> ExtensionVerdict:
        ext = file_extension(filename)
        if ext in DANGEROUS_EXTENSIONS:
            return ExtensionVerdict.DANGEROUS
        if not ext or ext not in self.allowed_extensions:
            return ExtensionVerdict.UNKNOWN
        return ExtensionVerdict.ALLOWED

    def enforce(self, filename: str) -> None:
        verdict = self.classify(filename)
        if verdict is not ExtensionVerdict.ALLOWED:
            logger.warning(f"Rejected {filename!r}: extension is {verdict.value}")
            raise DisallowedExtension()

    def sanitize_filename(self, filename: str) -> str:
        """
        Strip directories and unsafe characters from a client supplied name.

        Intermediate extensions that are not allowed get a trailing underscore
        so that ``shell.php.jpg`` can never be served as a script.
        """
        name = os.path.basename(filename.replace("\\", "/"))
        name = _UNSAFE_CHARS.sub("-", name.strip())
        name = _REPEATED_DASHES.sub("-", name).lstrip(".-")
        if not name:
            return "unnamed-file"

        parts = name.split(".")
        if len(parts) > 2:
            head, middle, ext = parts[0], parts[1:-1], parts[-1]
            middle = [
                part + "_" if part and (part.lower() not in self.allowed_extensions or part.lower() in DANGEROUS_EXTENSIONS) else part
                for part in middle
            ]
            name = ".".join([head] + middle + [ext])
        return name
