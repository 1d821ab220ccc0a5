"""Hands a rendered artifact back as a served link, a file path or raw data."""

import base64
import binascii
import logging
from typing import Union

from .errors import DeliveryError
from .file_manager import FileManager
from .models import DeliveryMode, DeliveryResult, RenderFormat, RenderResult

logger = logging.getLogger(__name__)


class OutputRouter:
    def __init__(self, file_manager: FileManager, port: int, host: str = "localhost"):
        self.file_manager = file_manager
        self.port = port
        self.host = host

    def link_for(self, filename: str) -> str:
        return f"http://{self.host}:{self.port}/static/{filename}"

    async def deliver(
        self,
        result: RenderResult,
        mode: DeliveryMode = DeliveryMode.LINK,
    ) -> DeliveryResult:
        """Route a successful render. Failures come back as a failed DeliveryResult."""
        fmt = result.format
        if not result.success or not result.data:
            return DeliveryResult.failure(result.error or "Nothing to deliver", fmt)

        if mode is DeliveryMode.RAW:
            logger.info("event=delivered format=%s output_type=raw", fmt)
            return DeliveryResult.delivered(result.data, fmt, DeliveryMode.RAW, result.size)

        try:
            content = materialize(result.data, RenderFormat(fmt))
            filename = await self.file_manager.save_temp_file(content, fmt)
        except (DeliveryError, ValueError) as e:
            logger.warning("event=delivery_failed format=%s output=%s error=%s", fmt, mode.value, e)
            return DeliveryResult.failure(f"Could not save output: {e}", fmt)

        if mode is DeliveryMode.FILEPATH:
            file_path = str(self.file_manager.path_for(filename))
            logger.info("event=delivered format=%s output_type=filepath path=%s", fmt, file_path)
            return DeliveryResult.delivered(file_path, fmt, DeliveryMode.FILEPATH, result.size)

        url = self.link_for(filename)
        logger.info("event=delivered format=%s output_type=link url=%s", fmt, url)
        return DeliveryResult.delivered(url, fmt, DeliveryMode.LINK, result.size)


def materialize(data: str, fmt: RenderFormat) -> Union[str, bytes]:
    """Turn a render payload into file content.

    SVG stays text and must look like SVG markup; other formats are base64
    and must decode to a non-empty buffer.
    """
    if fmt.is_vector:
        if not data.lstrip().startswith("<svg"):
            raise DeliveryError("SVG data must start with <svg")
        return data
    try:
        decoded = base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DeliveryError(f"Invalid base64 data: {e}") from e
    if not decoded:
        raise DeliveryError("Base64 data must not be empty")
    return decoded
