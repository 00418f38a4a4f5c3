import logging
import re

import requests

from config import PINATA_CONFIG
from quizzes.errors import UpstreamError
from quizzes.service import validate_image

logger = logging.getLogger(__name__)


def read_upload(file) -> bytes:
    """Read an uploaded image, enforcing the quiz image size limit"""
    validate_image(file)
    return file.read()


def pin_file(file) -> str:
    """
    Pin an image to IPFS through Pinata

    Args:
        file: FileStorage object from Flask request.files

    Returns:
        str: ipfs://<IpfsHash> URI of the pinned file
    """
    jwt = PINATA_CONFIG['JWT']
    if not jwt:
        logger.error("❌ PINATA_JWT not configured")
        raise UpstreamError("IPFS pinning not configured", details="Set PINATA_JWT")

    file_data = read_upload(file)
    filename = re.sub(r'[^a-zA-Z0-9._-]', '_', getattr(file, 'filename', None) or 'quiz_image')
    content_type = getattr(file, 'mimetype', None) or 'application/octet-stream'

    logger.info(f"📤 Pinning to IPFS: {filename} ({len(file_data)} bytes)")

    try:
        response = requests.post(
            PINATA_CONFIG['PIN_FILE_URL'],
            headers={'Authorization': f'Bearer {jwt}'},
            files={'file': (filename, file_data, content_type)},
            timeout=PINATA_CONFIG['REQUEST_TIMEOUT']
        )
    except requests.exceptions.RequestException as e:
        logger.error(f"❌ Pinata request failed: {e}")
        raise UpstreamError("Failed to upload image to IPFS", details=str(e))

    logger.info(f"📥 Pinata Response: {response.status_code}")

    if response.status_code != 200:
        logger.error(f"❌ Pinata HTTP error: {response.status_code} - {response.text[:200]}")
        raise UpstreamError("Failed to upload image to IPFS", details=f"HTTP {response.status_code}")

    ipfs_hash = response.json().get('IpfsHash')
    if not ipfs_hash:
        raise UpstreamError("Failed to upload image to IPFS", details="Pinata response missing IpfsHash")

    logger.info(f"✅ Image pinned: ipfs://{ipfs_hash}")
    return f"ipfs://{ipfs_hash}"
