"""
Configuration manager for QuizMaster settings and parameters.
"""
import logging
from typing import Optional, Dict, Any, List

from .models import Difficulty, QuizSettings


class ConfigManager:
    """Manages quiz configuration settings and storage parameters."""

    # Default configuration values
    DEFAULT_TIMER_DURATION = 30
    DEFAULT_QUESTION_AMOUNT = 15
    DEFAULT_SCORES_FILE = "./data/scores.json"
    DEFAULT_LEADERBOARD_LIMIT = 10

    # Validation limits
    MIN_TIMER_DURATION = 5
    MAX_TIMER_DURATION = 300  # 5 minutes
    MIN_QUESTION_AMOUNT = 1
    MAX_QUESTION_AMOUNT = 50  # Open Trivia DB maximum per request
    MAX_LEADERBOARD_LIMIT = 100
    QUESTION_TYPES = ("multiple", "boolean")

    def __init__(self):
        """Initialize ConfigManager with default settings."""
        self.logger = logging.getLogger(__name__)
        self._global_settings = QuizSettings(
            timer_duration=self.DEFAULT_TIMER_DURATION,
            question_amount=self.DEFAULT_QUESTION_AMOUNT
        )
        self._scores_file = self.DEFAULT_SCORES_FILE
        self._leaderboard_limit = self.DEFAULT_LEADERBOARD_LIMIT

    def get_quiz_settings(self) -> QuizSettings:
        """
        Get current quiz settings.

        Returns:
            Copy of the current QuizSettings
        """
        return QuizSettings(
            timer_duration=self._global_settings.timer_duration,
            question_amount=self._global_settings.question_amount,
            category=self._global_settings.category,
            difficulty=self._global_settings.difficulty,
            question_type=self._global_settings.question_type
        )

    def _check_int(self, name: str, value: Any, minimum: int, maximum: int, unit: str = "") -> Optional[Dict[str, Any]]:
        """Return an error result if value is not an int within range, else None."""
        if isinstance(value, bool) or not isinstance(value, int):
            error_msg = f"{name} must be an integer, got {type(value).__name__}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid input: Expected a number, got {type(value).__name__}"
            }
        if value < minimum:
            error_msg = f"{name} must be at least {minimum}{unit}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Too low: Minimum is {minimum}{unit}"
            }
        if value > maximum:
            error_msg = f"{name} cannot exceed {maximum}{unit}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Too high: Maximum is {maximum}{unit}"
            }
        return None

    def set_timer_duration(self, duration: int) -> Dict[str, Any]:
        """
        Set the countdown duration for each question.

        Args:
            duration: Timer duration in seconds

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        error = self._check_int("Timer duration", duration, self.MIN_TIMER_DURATION, self.MAX_TIMER_DURATION, " seconds")
        if error:
            return error

        self._global_settings.timer_duration = duration
        self.logger.info(f"Timer duration set to {duration} seconds")
        return {
            'success': True,
            'message': f"Timer duration set to {duration} seconds",
            'user_message': f"✅ Timer set to {duration} seconds"
        }

    def get_timer_duration(self) -> int:
        return self._global_settings.timer_duration

    def set_question_amount(self, amount: int) -> Dict[str, Any]:
        """
        Set how many questions are fetched for each quiz.

        Args:
            amount: Number of questions per quiz

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        error = self._check_int("Question amount", amount, self.MIN_QUESTION_AMOUNT, self.MAX_QUESTION_AMOUNT)
        if error:
            return error

        self._global_settings.question_amount = amount
        self.logger.info(f"Question amount set to {amount}")
        return {
            'success': True,
            'message': f"Question amount set to {amount}",
            'user_message': f"✅ Quizzes will have {amount} questions"
        }

    def get_question_amount(self) -> int:
        return self._global_settings.question_amount

    def set_difficulty(self, difficulty: Optional[str]) -> Dict[str, Any]:
        """
        Restrict fetched questions to one difficulty, or None for any.

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if difficulty is not None:
            valid = [d.value for d in Difficulty]
            if not isinstance(difficulty, str) or difficulty.lower() not in valid:
                error_msg = f"Difficulty must be one of {', '.join(valid)}, got {difficulty!r}"
                self.logger.error(error_msg)
                return {
                    'success': False,
                    'error': error_msg,
                    'user_message': f"❌ Unknown difficulty: choose {', '.join(valid)}"
                }
            difficulty = difficulty.lower()

        self._global_settings.difficulty = difficulty
        label = difficulty or "any"
        self.logger.info(f"Difficulty set to {label}")
        return {
            'success': True,
            'message': f"Difficulty set to {label}",
            'user_message': f"✅ Difficulty set to {label}"
        }

    def get_difficulty(self) -> Optional[str]:
        return self._global_settings.difficulty

    def set_question_type(self, question_type: Optional[str]) -> Dict[str, Any]:
        """
        Restrict fetched questions to multiple choice or true/false, or None for both.

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if question_type is not None and question_type not in self.QUESTION_TYPES:
            error_msg = f"Question type must be one of {', '.join(self.QUESTION_TYPES)}, got {question_type!r}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': "❌ Question type must be 'multiple' or 'boolean'"
            }

        self._global_settings.question_type = question_type
        label = question_type or "any"
        self.logger.info(f"Question type set to {label}")
        return {
            'success': True,
            'message': f"Question type set to {label}",
            'user_message': f"✅ Question type set to {label}"
        }

    def set_category(self, category: Optional[int]) -> Dict[str, Any]:
        """
        Restrict fetched questions to an Open Trivia DB category id, or None for any.

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if category is not None:
            error = self._check_int("Category", category, 1, 1000)
            if error:
                return error

        self._global_settings.category = category
        label = str(category) if category is not None else "any"
        self.logger.info(f"Category set to {label}")
        return {
            'success': True,
            'message': f"Category set to {label}",
            'user_message': f"✅ Category set to {label}"
        }

    def set_scores_file(self, path: str) -> Dict[str, Any]:
        """
        Set the JSON file used for stored scores.

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if not isinstance(path, str) or not path.strip():
            error_msg = "Scores file path cannot be empty"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': "❌ Scores file path cannot be empty"
            }

        self._scores_file = path.strip()
        self.logger.info(f"Scores file set to {self._scores_file}")
        return {
            'success': True,
            'message': f"Scores file set to {self._scores_file}",
            'user_message': f"✅ Scores will be stored in {self._scores_file}"
        }

    def get_scores_file(self) -> str:
        return self._scores_file

    def set_leaderboard_limit(self, limit: int) -> Dict[str, Any]:
        """
        Set the default number of leaderboard entries shown.

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        error = self._check_int("Leaderboard limit", limit, 1, self.MAX_LEADERBOARD_LIMIT)
        if error:
            return error

        self._leaderboard_limit = limit
        self.logger.info(f"Leaderboard limit set to {limit}")
        return {
            'success': True,
            'message': f"Leaderboard limit set to {limit}",
            'user_message': f"✅ Leaderboard shows the top {limit}"
        }

    def get_leaderboard_limit(self) -> int:
        return self._leaderboard_limit

    def apply_config(self, config: Dict[str, Any]) -> List[str]:
        """
        Apply the ``quiz`` and ``storage`` sections of a config.json dictionary.

        Invalid values are logged and skipped so defaults stay in effect.
        The resulting settings are then checked with ``validate_settings``.

        Returns:
            List of error messages for rejected values and validation issues
        """
        quiz_config = config.get('quiz', {}) or {}
        storage_config = config.get('storage', {}) or {}

        setters = [
            ('timer_duration', quiz_config, self.set_timer_duration),
            ('question_amount', quiz_config, self.set_question_amount),
            ('difficulty', quiz_config, self.set_difficulty),
            ('question_type', quiz_config, self.set_question_type),
            ('category', quiz_config, self.set_category),
            ('leaderboard_limit', quiz_config, self.set_leaderboard_limit),
            ('scores_file', storage_config, self.set_scores_file),
        ]

        errors = []
        for key, section, setter in setters:
            if key not in section:
                continue
            result = setter(section[key])
            if not result['success']:
                errors.append(f"{key}: {result['error']}")

        validation = self.validate_settings()
        errors.extend(validation['issues'])

        if errors:
            self.logger.warning(f"Configuration applied with {len(errors)} problems")
        else:
            self.logger.info("Configuration applied successfully")
        return errors

    def validate_settings(self) -> Dict[str, Any]:
        """
        Validate current settings and return validation results.

        Returns:
            Dictionary with validation results and any issues found
        """
        validation_result = {
            "valid": True,
            "issues": []
        }

        settings = self._global_settings
        if (not isinstance(settings.timer_duration, int) or
                not self.MIN_TIMER_DURATION <= settings.timer_duration <= self.MAX_TIMER_DURATION):
            validation_result["valid"] = False
            validation_result["issues"].append(f"Invalid timer duration: {settings.timer_duration}")

        if (not isinstance(settings.question_amount, int) or
                not self.MIN_QUESTION_AMOUNT <= settings.question_amount <= self.MAX_QUESTION_AMOUNT):
            validation_result["valid"] = False
            validation_result["issues"].append(f"Invalid question amount: {settings.question_amount}")

        if settings.difficulty is not None and settings.difficulty not in {d.value for d in Difficulty}:
            validation_result["valid"] = False
            validation_result["issues"].append(f"Invalid difficulty: {settings.difficulty}")

        if settings.question_type is not None and settings.question_type not in self.QUESTION_TYPES:
            validation_result["valid"] = False
            validation_result["issues"].append(f"Invalid question type: {settings.question_type}")

        if not isinstance(self._scores_file, str) or not self._scores_file.strip():
            validation_result["valid"] = False
            validation_result["issues"].append(f"Invalid scores file: {self._scores_file}")

        return validation_result

    def get_settings_summary(self) -> str:
        """
        Get a formatted summary of current settings.

        Returns:
            Human-readable string describing current settings
        """
        settings = self._global_settings
        return (
            f"Quiz Settings:\n"
            f"• Questions: {settings.question_amount}\n"
            f"• Difficulty: {settings.difficulty or 'any'}\n"
            f"• Type: {settings.question_type or 'any'}\n"
            f"• Category: {settings.category if settings.category is not None else 'any'}\n"
            f"• Timer: {settings.timer_duration} seconds\n"
            f"• Scores File: {self._scores_file}"
        )
