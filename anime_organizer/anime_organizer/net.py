import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from . import constants as c


def create_retry_session(
    retries: int = c.HTTP_RETRY_COUNT,
    backoff_factor: float = c.HTTP_RETRY_BACKOFF_FACTOR,
    status_forcelist: tuple = (500, 502, 503, 504),
    user_agent: str = c.ANIMEDB_USER_AGENT,
) -> requests.Session:
    """Creates a requests session with retry logic."""
    session = requests.Session()
    retry = Retry(
        total=retries,
        read=retries,
        connect=retries,
        backoff_factor=backoff_factor,
        status_forcelist=status_forcelist,
    )
    adapter = HTTPAdapter(max_retries=retry)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    session.headers["User-Agent"] = user_agent
    return session
