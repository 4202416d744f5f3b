import os

"""
Constants used throughout the Anime Organizer application.
"""

# Corpus (SubShare db.xml)
SUBSHARE_DB_FILENAME = "db.xml"
SUBSHARE_RECORD_TAG = "subs"
SUBSHARE_REPO_ROOT = "subs_list/"
SUBSHARE_PRIMARY_URL = "https://svn.acgdev.com:505/!/#sub_share/view/head/trunk/Subtitles%20DataBase/Files/db.xml"
SUBSHARE_BACKUP_URL = "https://raw.githubusercontent.com/foxofice/sub_share/master/Subtitles%20DataBase/Files/db.xml"
SUBSHARE_AUTH = ("test", "")
SUBSHARE_TIMEOUT_SECONDS = 60
RAW_SCAN_CHUNK_CHARS = 64 * 1024  # Characters per chunk for the raw start-tag count
DOWNLOAD_CHUNK_BYTES = 64 * 1024

# Search
MIN_BIGRAM_QUERY_LENGTH = 2
CJK_RANGES = (
    (0x4E00, 0x9FFF),  # CJK Unified Ideographs
    (0x3400, 0x4DBF),  # Extension A
    (0xF900, 0xFAFF),  # Compatibility Ideographs
)

# Reconciliation
SCAN_BATCH_SIZE = 10
MIN_CLEANED_NAME_LENGTH = 2  # Cleaned name must be longer than this to be re-queried
KNOWN_TYPES = ("TV", "OVA", "ONA", "Movie", "Special", "特別版", "劇場版")

# Technical tokens stripped from folder names before a re-query
NOISE_TOKEN_PATTERNS = [
    r"\b(?:2160|1080|720|576|480)[pi]\b",
    r"\b\d{3,4}x\d{3,4}\b",
    r"\b4K\b",
    r"\b(?:x|h)\.?26[45]\b",
    r"\b(?:HEVC|AVC|AV1|VP9|XviD|DivX)\b",
    r"\b(?:10|8)[- ]?bits?\b",
    r"\b(?:FLAC|AAC|AC3|DTS|OPUS|MP3|TrueHD)(?:[ .]?\d\.\d)?\b",
    r"\b(?:MKV|MP4|AVI|M2TS|TS|WMV)\b",
    r"\b(?:BD|BDRip|BluRay|Blu-Ray|BDMV|WEB-?DL|WEB-?Rip|WEB|HDTV|DVD|DVDRip|TVRip|Remux)\b",
    r"\b(?:Ma10p|Hi10p|Main10|FFmpeg|Handbrake|VCB-Studio|Snow-Raws|ANK-Raws|Moozzi2|LoliHouse|Nekomoe)\b",
    r"\b(?:CHS|CHT|BIG5|GB|JPSC|JPTC|SC|TC)\b",
    r"(?:简体|繁體|简繁|簡繁|内封|內封|外挂|外掛|字幕)",
]

# Naming
DEFAULT_NAMING_FORMAT = "{Title} ({Year})"
MAX_PATH_LENGTH = 260

# Providers
PROVIDER_MAX_RETRIES = 2
PROVIDER_COOLDOWN_SECONDS = 1.2
PROVIDER_BACKOFF_BASE_SECONDS = 0.8
PROVIDER_BACKOFF_JITTER_SECONDS = 0.5
PROVIDER_TIMEOUT_SECONDS = int(os.getenv("AI_TIMEOUT", "60"))
GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
GEMINI_DEFAULT_MODEL = "gemini-2.5-flash"
DEEPSEEK_PROXY_BASE_URL = "https://api.chatanywhere.org/v1"
DEEPSEEK_DEFAULT_MODEL = "deepseek-chat"
OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
OPENROUTER_DEFAULT_MODEL = "openrouter/auto"
OPENROUTER_REFERER = "https://github.com/anime-organizer/anime-organizer"
OPENROUTER_TITLE = "Anime Organizer CLI"
STABLE_ID_LENGTH = 12

# Verification (AnimeDB)
ANIMEDB_SEARCH_URL = "https://db.animedb.jp/index.php/searchdata/"
ANIMEDB_TERMS_COOKIE = {"wptp_terms_261": "accepted"}
ANIMEDB_USER_AGENT = "AnimeFolderOrganizer/1.0"
ANIMEDB_TIMEOUT_SECONDS = 15
ANIMEDB_TITLE_SELECTOR = "h2.ttitle"
HTTP_RETRY_COUNT = 3
HTTP_RETRY_BACKOFF_FACTOR = 0.5

# History / state
HISTORY_DB_FILENAME = "rename_history.db"
HISTORY_RECENT_LIMIT = 200
SCAN_STATE_FILENAME = "anime_organizer_scan.json"

# Display Configuration
BYTES_PER_KB = 1024
BYTES_PER_MB = 1024 * 1024
PROGRESS_REFRESH_RATE = 10  # Refresh per second for progress bars

# AI Prompts
SYSTEM_PROMPT = """You are an Anime Metadata Expert.
You specialize in identifying official anime titles and cleaning noisy folder names for database usage."""

IDENTIFICATION_PROMPT = """Your task is to identify the OFFICIAL anime series title from folder names.

RULES:

1. Identify, do not translate:
- Recognize the real anime series and return official database titles.
- Never translate between languages (JP/CN/TW/EN). Only output titles as officially released.

2. Ignore noise:
Ignore resolution tags, codecs, release groups, bracketed years, rip formats, hashes and technical labels.
Season numbers and movie/OVA keywords may help choose the right title, type and year, but do not put them in the title fields.

3. Official titles:
- titleJP: official Japanese title (Kanji/Kana).
- titleTW: official Taiwan release title only. Empty string if never released in Taiwan.
- titleCN: official mainland China title only. Empty string if unknown.
- titleEN: official English release title. Empty string if unknown.

4. Year: first official release year (broadcast start or theatrical premiere).

5. Type: TV, Movie, OVA, Special or 特別版 (compilation or director's cut).

6. If identification is uncertain, set every title field to an empty string and confidence below 0.4.

7. Each input line is one item. Keep input order; index starts at 0 and matches the input order.

8. Return ONLY JSON with the exact schema provided. No markdown, no explanations.

9. Confidence: 1.00 exact official match, 0.8-0.95 high, 0.5-0.8 partial, below 0.5 uncertain."""

OUTPUT_SCHEMA_PROMPT = """Return ONLY a JSON object with this structure (no markdown, no extra keys):

{
  "items": [
    {
      "index": 0,
      "id": "",
      "titleJP": "",
      "titleCN": "",
      "titleTW": "",
      "titleEN": "",
      "type": "TV|OVA|特別版|Special|Movie",
      "year": 2024,
      "confidence": 0.95
    }
  ]
}"""
