from flask import Flask, jsonify
from flask_compress import Compress
import os
import logging

from config import QUIZ_CONFIG

logging.basicConfig(
    level=getattr(logging, os.getenv('LOG_LEVEL', 'INFO').upper(), logging.INFO),
    format='%(asctime)s %(levelname)s %(name)s: %(message)s'
)
logger = logging.getLogger(__name__)

# Reduce werkzeug logging for health checks
logging.getLogger('werkzeug').setLevel(logging.ERROR)
logging.getLogger('httpx').setLevel(logging.ERROR)  # Supabase client chatter


def create_app(store=None, contract=None, generator=None, pinner=None, clock=None, config=None):
    """
    Build the ChainIQ Flask app.

    Collaborators default to the hosted implementations (Supabase store,
    QuizRewards contract, Gemini/OpenAI generator, Pinata pinning). Tests and
    alternate deployments pass their own.
    """
    from quizzes import QuizService, SupabaseQuizStore, init_quizzes
    from quizzes.blockchain import QuizRewardsContract
    from quizzes.generator import QuestionGenerator
    from quizzes.models import utc_now
    from frames import init_frames
    import ipfs_client

    app = Flask(__name__)
    app.secret_key = os.environ.get('SECRET_KEY', 'dev-secret-key')

    compress = Compress()
    compress.init_app(app)

    # Uploads are capped at 5MB by the service; leave headroom for form fields
    app.config['MAX_CONTENT_LENGTH'] = QUIZ_CONFIG['MAX_IMAGE_BYTES'] + 1024 * 1024
    app.json.sort_keys = False
    if config:
        app.config.update(config)

    service = QuizService(
        store=store if store is not None else SupabaseQuizStore(),
        contract=contract if contract is not None else QuizRewardsContract(),
        generator=generator if generator is not None else QuestionGenerator(),
        pinner=pinner if pinner is not None else ipfs_client.pin_file,
        clock=clock or utc_now,
    )

    if not init_quizzes(app, service):
        logger.error("❌ Quiz module initialization failed")
    if not init_frames(app):
        logger.error("❌ Frames initialization failed")

    @app.route("/health")
    def health_check():
        """Health check endpoint for deployment"""
        return jsonify({
            "status": "ok",
            "service": "ChainIQ",
            "version": "1.0.0"
        }), 200

    @app.errorhandler(413)
    def request_too_large(e):
        return jsonify({'error': 'Image size must be less than 5MB'}), 413

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({'error': 'Not found'}), 404

    return app


# Module-level app for gunicorn (main:app)
app = create_app()


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 5000))
    logger.info(f"🌐 Starting Flask server on http://0.0.0.0:{port}")

    # Threaded mode; per-player progression is serialized by the engine
    app.run(host="0.0.0.0", port=port, debug=False, threaded=True, use_reloader=False)
