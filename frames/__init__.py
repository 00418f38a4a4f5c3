from .routes import frames_bp

import logging

logger = logging.getLogger(__name__)


def init_frames(app):
    """Register the Farcaster frame endpoints"""
    try:
        app.register_blueprint(frames_bp)
        logger.info("✅ Frames initialized: GET/POST /frames/quiz")
        return True
    except Exception as e:
        logger.error(f"❌ Frames initialization failed: {e}")
        return False


__all__ = ['frames_bp', 'init_frames']
