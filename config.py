"""
Application Configuration
"""
import os

# Public domain used in frame links and share URLs
PUBLIC_BASE_URL = os.getenv('PUBLIC_BASE_URL', 'http://localhost:5000').rstrip('/')

def get_share_url_base():
    """Get base URL for shareable links (frames, Warpcast shares)"""
    return PUBLIC_BASE_URL

# ============================
# Quiz Settings
# ============================
QUIZ_CONFIG = {
    # Play rules
    'SECONDS_PER_QUESTION': int(os.getenv('SECONDS_PER_QUESTION', 10)),
    'OPTIONS_PER_QUESTION': 4,
    'MIN_QUESTION_COUNT': 1,
    'MAX_QUESTION_COUNT': 20,
    'DIFFICULTIES': ('beginner', 'intermediate', 'advanced'),

    # Quiz creation
    'MAX_IMAGE_BYTES': 5 * 1024 * 1024,  # 5MB
    'MINUTES_PER_QUESTION': 2,  # estimatedTime shown to players
    'REWARD_TYPE': 'NFT',
    'REWARD_AMOUNT': 1,
    'MAX_FILE_CONTENT_CHARS': 10000,

    # Retake policy: False = no further attempts once a perfect score is recorded
    'ALLOW_RETAKE_AFTER_PERFECT': os.getenv('ALLOW_RETAKE_AFTER_PERFECT', 'false').lower() == 'true',

    # Leaderboard time: 'observed' (span + durations) or 'durations' (sum of durations only)
    'LEADERBOARD_TIME_MODE': os.getenv('LEADERBOARD_TIME_MODE', 'observed'),
}

# ============================
# Blockchain Settings
# ============================
CHAIN_CONFIG = {
    'RPC_URL': os.getenv('CELO_RPC_URL', 'https://alfajores-forno.celo-testnet.org'),
    'CHAIN_ID': int(os.getenv('CHAIN_ID', 44787)),  # Celo Alfajores
    'CONTRACT_ADDRESS': os.getenv('QUIZ_CONTRACT_ADDRESS'),
    'PRIVATE_KEY': os.getenv('PRIVATE_KEY'),
    'EXPLORER_TX_URL': os.getenv('EXPLORER_TX_URL', 'https://alfajores.celoscan.io/tx/'),

    # Bounded retry for transaction submission
    'MAX_ATTEMPTS': 5,
    'RETRY_BACKOFF_SECONDS': 2,
    'RECEIPT_TIMEOUT_SECONDS': 60,
    'GAS_BUFFER_PERCENT': 120,
}

# ============================
# External Services
# ============================
LLM_CONFIG = {
    'GEMINI_API_KEY': os.getenv('GEMINI_API_KEY'),
    'GEMINI_MODEL': os.getenv('GEMINI_MODEL', 'gemini-1.5-flash'),
    'OPENAI_API_KEY': os.getenv('OPENAI_API_KEY'),
    'OPENAI_MODEL': os.getenv('OPENAI_MODEL', 'gpt-4o-mini'),
    'TEMPERATURE': 0.7,
    'MAX_OUTPUT_TOKENS': 4096,
    'REQUEST_TIMEOUT': 60,
}

PINATA_CONFIG = {
    'JWT': os.getenv('PINATA_JWT'),
    'PIN_FILE_URL': 'https://api.pinata.cloud/pinning/pinFileToIPFS',
    'REQUEST_TIMEOUT': 60,
}

# ============================
# Farcaster Frames
# ============================
FRAME_CONFIG = {
    'IPFS_GATEWAY_URL': os.getenv('IPFS_GATEWAY_URL', 'https://gateway.pinata.cloud/ipfs/'),
    'DEFAULT_IMAGE_URL': os.getenv('FRAME_IMAGE_URL', f'{PUBLIC_BASE_URL}/static/quiz.png'),
    'SHARE_COMPOSE_URL': 'https://warpcast.com/~/compose',
}
