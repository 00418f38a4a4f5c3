import os
import logging
import time
from functools import wraps
from supabase import create_client, Client

logger = logging.getLogger(__name__)

# Supabase configuration
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_KEY = os.getenv("SUPABASE_ANON_KEY")

supabase: Client = None

CONNECTION_ERROR_KEYWORDS = ('server disconnected', 'connection', 'timeout', 'network')


def is_connection_error(error: Exception) -> bool:
    error_msg = str(error).lower()
    return any(keyword in error_msg for keyword in CONNECTION_ERROR_KEYWORDS)


def retry_on_connection_error(max_retries=3, delay=1):
    """Decorator to retry database operations on connection errors"""
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            last_exception = None

            for attempt in range(max_retries):
                try:
                    return func(*args, **kwargs)
                except Exception as e:
                    last_exception = e
                    if not is_connection_error(e):
                        raise

                    if attempt < max_retries - 1:
                        logger.warning(f"⚠️ Connection error on attempt {attempt + 1}/{max_retries}: {e}")
                        time.sleep(delay * (attempt + 1))
                    else:
                        logger.error(f"❌ All {max_retries} connection attempts failed: {e}")

            raise last_exception
        return wrapper
    return decorator


def get_supabase_client(retries=3):
    """Get the shared Supabase client, creating it on first use"""
    global supabase

    if supabase is not None:
        return supabase

    if not SUPABASE_URL or not SUPABASE_KEY or SUPABASE_URL == "your-supabase-url":
        logger.warning("⚠️ Supabase not configured")
        logger.info("💡 Set SUPABASE_URL and SUPABASE_ANON_KEY environment variables to enable storage")
        return None

    for attempt in range(retries):
        try:
            supabase = create_client(SUPABASE_URL, SUPABASE_KEY)
            logger.info("✅ Supabase client initialized successfully")
            return supabase
        except Exception as e:
            logger.error(f"❌ Supabase initialization failed on attempt {attempt + 1}: {e}")
            if attempt < retries - 1:
                time.sleep(2)

    logger.error("💡 Check your Supabase URL and API key in environment variables")
    return None


# SQL COMMANDS TO RUN IN YOUR SUPABASE SQL EDITOR:
"""
-- 1. Quizzes (questions stored as a JSON array, order is play order)
CREATE TABLE IF NOT EXISTS quizzes (
    id VARCHAR(64) PRIMARY KEY,
    title TEXT NOT NULL,
    description TEXT,
    questions JSONB NOT NULL,
    difficulty VARCHAR(20),
    estimated_time INTEGER,
    reward_type VARCHAR(20) DEFAULT 'NFT',
    reward_amount INTEGER DEFAULT 1,
    nft_metadata TEXT,
    created_by VARCHAR(64),
    transaction_hash VARCHAR(66),
    created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()
);

-- 2. Completed play-throughs
CREATE TABLE IF NOT EXISTS quiz_attempts (
    id SERIAL PRIMARY KEY,
    quiz_id VARCHAR(64) NOT NULL REFERENCES quizzes(id) ON DELETE CASCADE,
    address VARCHAR(64) NOT NULL,
    score INTEGER NOT NULL CHECK (score >= 0),
    completed_at TIMESTAMP WITH TIME ZONE NOT NULL,
    time_taken DOUBLE PRECISION NOT NULL CHECK (time_taken >= 0),
    UNIQUE (quiz_id, address, completed_at)
);

CREATE INDEX IF NOT EXISTS idx_quiz_attempts_quiz ON quiz_attempts(quiz_id);
CREATE INDEX IF NOT EXISTS idx_quiz_attempts_address ON quiz_attempts(address);

-- 3. In-flight progression, one row per player per quiz
CREATE TABLE IF NOT EXISTS quiz_progress (
    player_id VARCHAR(64) NOT NULL,
    quiz_id VARCHAR(64) NOT NULL REFERENCES quizzes(id) ON DELETE CASCADE,
    current_question_index INTEGER NOT NULL DEFAULT 0,
    score INTEGER NOT NULL DEFAULT 0,
    answers_given JSONB NOT NULL DEFAULT '[]',
    started_at TIMESTAMP WITH TIME ZONE NOT NULL,
    version INTEGER NOT NULL DEFAULT 1,
    completed_at TIMESTAMP WITH TIME ZONE,
    updated_at TIMESTAMP WITH TIME ZONE DEFAULT NOW(),
    PRIMARY KEY (player_id, quiz_id)
);
"""
