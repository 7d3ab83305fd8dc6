"""
Open Trivia DB client.
"""
import logging
from typing import Any, Dict, List, Optional

import requests

from .errors import SourceUnavailable

logger = logging.getLogger(__name__)

OPENTDB_API_URL = "https://opentdb.com/api.php"

# Open Trivia DB response codes
RESPONSE_MESSAGES = {
    1: "Not enough questions for the requested category and difficulty",
    2: "Invalid parameter sent to the trivia API",
    3: "Session token not found",
    4: "Session token has returned all possible questions",
    5: "Too many requests; wait a few seconds and try again",
}


class OpenTriviaClient:
    """Fetches raw question sets from Open Trivia DB."""

    def __init__(self, api_url: str = OPENTDB_API_URL, timeout: float = 10.0, session: Optional[requests.Session] = None):
        self.api_url = api_url
        self.timeout = timeout
        self.http = session or requests.Session()
        self.headers = {
            'User-Agent': 'QuizMaster/1.0 (trivia quiz)',
            'Accept': 'application/json',
        }

    @staticmethod
    def build_params(
        amount: int = 15,
        category: Optional[int] = None,
        difficulty: Optional[str] = None,
        question_type: Optional[str] = None
    ) -> Dict[str, Any]:
        """Query parameters for a question request; empty filters are omitted."""
        params: Dict[str, Any] = {'amount': amount}
        if category:
            params['category'] = category
        if difficulty:
            params['difficulty'] = difficulty
        if question_type:
            params['type'] = question_type
        return params

    def fetch_payload(
        self,
        amount: int = 15,
        category: Optional[int] = None,
        difficulty: Optional[str] = None,
        question_type: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Fetch the full upstream response.

        Returns:
            Parsed JSON payload with ``response_code`` 0 and a ``results`` list

        Raises:
            SourceUnavailable: On network errors, bad status, invalid JSON or a
                non-zero response code
        """
        params = self.build_params(amount, category, difficulty, question_type)
        logger.info(f"Fetching questions: {params}")

        try:
            response = self.http.get(self.api_url, params=params, headers=self.headers, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            logger.error(f"Error fetching questions: {e}")
            raise SourceUnavailable(f"Failed to fetch questions from the trivia API: {e}")

        try:
            data = response.json()
        except ValueError as e:
            logger.error(f"Trivia API returned invalid JSON: {e}")
            raise SourceUnavailable("Trivia API returned an invalid response")

        if not isinstance(data, dict):
            raise SourceUnavailable("Trivia API returned an invalid response")

        code = data.get('response_code')
        if code != 0:
            message = RESPONSE_MESSAGES.get(code, "The API request failed. Please try again.")
            logger.warning(f"Trivia API responded with code {code}: {message}")
            raise SourceUnavailable(message, code=code)

        if not isinstance(data.get('results'), list):
            raise SourceUnavailable("Trivia API response has no results")

        logger.info(f"Fetched {len(data['results'])} questions")
        return data

    def fetch_questions(
        self,
        amount: int = 15,
        category: Optional[int] = None,
        difficulty: Optional[str] = None,
        question_type: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """
        Fetch raw question records.

        Raises:
            SourceUnavailable: If the questions cannot be fetched
        """
        return self.fetch_payload(amount, category, difficulty, question_type)['results']
