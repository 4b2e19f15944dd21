"""Configuration settings for the application."""
import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# API settings
API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("API_PORT", 8000))
DEBUG = os.getenv("DEBUG", "False").lower() == "true"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# MongoDB settings
MONGODB_URI = os.getenv("MONGODB_URI", "mongodb://localhost:27017")
MONGODB_DEFAULT_DB = os.getenv("MONGODB_DEFAULT_DB", "test")
MONGODB_SCHEMA_SAMPLE_SIZE = int(os.getenv("MONGODB_SCHEMA_SAMPLE_SIZE", 10))
MONGODB_SERVER_SELECTION_TIMEOUT_MS = int(os.getenv("MONGODB_SERVER_SELECTION_TIMEOUT_MS", 5000))

# Schema cache and prompt bounds
SCHEMA_CACHE_TTL_SECONDS = float(os.getenv("SCHEMA_CACHE_TTL_SECONDS", 300))
DEFAULT_PREVIEW_LIMIT = int(os.getenv("DEFAULT_PREVIEW_LIMIT", 50))
DEFAULT_FIND_LIMIT = int(os.getenv("DEFAULT_FIND_LIMIT", 100))
MAX_SCHEMA_CONTEXT_CHARS = int(os.getenv("MAX_SCHEMA_CONTEXT_CHARS", 12000))
MAX_FIELDS_PER_COLLECTION = int(os.getenv("MAX_FIELDS_PER_COLLECTION", 40))

# LLM orchestration settings
LLM_PROVIDER_ORDER = [
    name.strip().lower()
    for name in os.getenv("LLM_PROVIDER_ORDER", "ollama,groq,gemini,openai").split(",")
    if name.strip()
]
LLM_MAX_ATTEMPTS = int(os.getenv("LLM_MAX_ATTEMPTS", 3))
LLM_RETRY_DELAY_SECONDS = float(os.getenv("LLM_RETRY_DELAY_SECONDS", 1.0))
LLM_HEALTH_TIMEOUT_SECONDS = float(os.getenv("LLM_HEALTH_TIMEOUT_SECONDS", 3.0))
LLM_TEMPERATURE = float(os.getenv("LLM_TEMPERATURE", 0.1))
LLM_MAX_OUTPUT_TOKENS = int(os.getenv("LLM_MAX_OUTPUT_TOKENS", 800))

# Local model (Ollama)
OLLAMA_BASE_URL = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")
OLLAMA_MODEL = os.getenv("OLLAMA_MODEL", "qwen2.5-coder:7b")
OLLAMA_TIMEOUT_SECONDS = float(os.getenv("OLLAMA_TIMEOUT_SECONDS", 60))

# Groq
GROQ_API_KEY = os.getenv("GROQ_API_KEY", "")
GROQ_MODEL_NAME = os.getenv("GROQ_MODEL_NAME", "qwen/qwen3-32b")
GROQ_TIMEOUT_SECONDS = float(os.getenv("GROQ_TIMEOUT_SECONDS", 30))

# Google Gemini
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY", os.getenv("GOOGLE_API_KEY", ""))
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
GEMINI_TIMEOUT_SECONDS = float(os.getenv("GEMINI_TIMEOUT_SECONDS", 30))

# OpenAI
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
OPENAI_TIMEOUT_SECONDS = float(os.getenv("OPENAI_TIMEOUT_SECONDS", 30))
