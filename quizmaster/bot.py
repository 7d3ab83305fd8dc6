import discord
from discord import app_commands
from discord.ext import commands
import logging
import os
from typing import Dict, List, Optional

from .config_manager import ConfigManager
from .data_manager import ScoreStore
from .errors import PersistenceFailure
from .models import LeaderboardEntry, QuizStats, ScoreRecord
from .question_source import OpenTriviaClient
from .quiz_controller import QuizController
from .quiz_engine import QuizSession

logger = logging.getLogger(__name__)

ANSWER_MARKERS = ["1️⃣", "2️⃣", "3️⃣", "4️⃣", "5️⃣", "6️⃣"]
DIFFICULTY_COLORS = {"easy": 0x00cc66, "medium": 0xffaa00, "hard": 0xff3333}


def format_answers(session: QuizSession) -> str:
    """Numbered answer list with the current selection marked."""
    question = session.current_question
    lines = []
    for i, answer in enumerate(question.answers):
        marker = ANSWER_MARKERS[i] if i < len(ANSWER_MARKERS) else f"{i + 1}."
        selected = " ◀️ **your answer**" if answer == session.current_answer else ""
        lines.append(f"{marker} {answer}{selected}")
    return "\n".join(lines)


def build_question_embed(session: QuizSession, notice: Optional[str] = None) -> discord.Embed:
    """Embed for the current question with its countdown."""
    question = session.current_question
    remaining = session.time_remaining
    embed = discord.Embed(
        title=f"🎯 Question {session.current_index + 1}/{session.total_questions}",
        description=question.text,
        color=DIFFICULTY_COLORS.get(question.difficulty.value, 0x00ff00)
    )
    embed.add_field(name="Answers", value=format_answers(session), inline=False)
    embed.add_field(name="📚 Category", value=question.category, inline=True)
    embed.add_field(name="📈 Difficulty", value=question.difficulty.value.capitalize(), inline=True)

    timer_emoji = "⏱️" if remaining > 10 else "⚠️" if remaining > 5 else "🚨"
    embed.add_field(
        name=f"{timer_emoji} Time Remaining",
        value=f"{remaining} second{'s' if remaining != 1 else ''}",
        inline=True
    )
    embed.add_field(
        name="Progress",
        value=f"{session.answered_count}/{session.total_questions} answered",
        inline=True
    )

    footer = notice or "Use /answer, /next, /previous or /finish"
    embed.set_footer(text=footer)
    return embed


def build_results_embed(session: QuizSession, saved_record: Optional[ScoreRecord] = None) -> discord.Embed:
    """Final score with a per-question review."""
    percentage = session.percentage
    if percentage >= 80:
        headline, color = "🏆 Excellent!", 0x00cc66
    elif percentage >= 50:
        headline, color = "👍 Good job!", 0xffaa00
    else:
        headline, color = "📚 Keep practicing!", 0xff3333

    embed = discord.Embed(
        title="🎉 Quiz Complete!",
        description=f"{headline}\nYou scored **{session.score}/{session.total_questions}** ({percentage}%)",
        color=color
    )

    review_lines = []
    for result in session.results():
        icon = "✅" if result.is_correct else ("❌" if result.answered else "⏭️")
        line = f"{icon} **Q{result.index + 1}.** {result.question.correct_answer}"
        if not result.is_correct:
            line += f" (you: {result.selected_answer or 'no answer'})"
        review_lines.append(line)

    # Discord caps field values at 1024 characters
    chunk: List[str] = []
    chunk_length = 0
    part = 1
    for line in review_lines:
        if chunk_length + len(line) + 1 > 1024:
            embed.add_field(name=f"Review ({part})", value="\n".join(chunk), inline=False)
            chunk, chunk_length, part = [], 0, part + 1
        chunk.append(line)
        chunk_length += len(line) + 1
    if chunk:
        embed.add_field(name="Review" if part == 1 else f"Review ({part})", value="\n".join(chunk), inline=False)

    if saved_record is not None:
        embed.set_footer(text=f"Score saved for {saved_record.username}")
    else:
        embed.set_footer(text="Use /save to record your score, or /trivia to play again")
    return embed


def build_leaderboard_embed(entries: List[LeaderboardEntry], total_players: int) -> discord.Embed:
    embed = discord.Embed(title="🏆 Leaderboard", color=0xffd700)
    if not entries:
        embed.description = "No scores yet. Finish a quiz and use /save to get on the board!"
        return embed

    medals = {1: "🥇", 2: "🥈", 3: "🥉"}
    embed.description = "\n".join(
        f"{medals.get(entry.rank, f'**{entry.rank}.**')} {entry.username} - "
        f"{entry.record.percentage}% ({entry.record.score}/{entry.record.total_questions})"
        for entry in entries
    )
    embed.set_footer(text=f"{total_players} player{'s' if total_players != 1 else ''} in total")
    return embed


def build_scores_embed(records: List[ScoreRecord], total: int) -> discord.Embed:
    embed = discord.Embed(title="📋 Recent Scores", color=0x6699ff)
    if not records:
        embed.description = "No scores saved yet."
        return embed
    embed.description = "\n".join(
        f"**{record.username}** - {record.score}/{record.total_questions} "
        f"({record.percentage}%) on {record.date:%Y-%m-%d}"
        for record in records
    )
    embed.set_footer(text=f"Showing {len(records)} of {total}")
    return embed


def build_stats_embed(stats: QuizStats) -> discord.Embed:
    embed = discord.Embed(title="📊 Quiz Statistics", color=0x6699ff)
    embed.add_field(name="Quizzes Played", value=str(stats.total_quizzes), inline=True)
    embed.add_field(name="Players", value=str(stats.unique_users), inline=True)
    embed.add_field(name="Average", value=f"{stats.average_score}%", inline=True)
    embed.add_field(name="Highest", value=f"{stats.highest_score}%", inline=True)
    embed.add_field(name="Lowest", value=f"{stats.lowest_score}%", inline=True)
    return embed


class QuizBot(commands.Bot):
    """Discord bot that runs Open Trivia DB quizzes"""

    def __init__(self, config=None):
        # Minimal intents for slash commands
        intents = discord.Intents.none()
        intents.guilds = True

        command_prefix = '!'
        if config and 'bot' in config:
            command_prefix = config['bot'].get('command_prefix', '!')

        super().__init__(
            command_prefix=command_prefix,  # Fallback prefix, mainly using slash commands
            intents=intents,
            help_command=None
        )

        self.app_config = config or {}

        self.config_manager: Optional[ConfigManager] = None
        self.score_store: Optional[ScoreStore] = None
        self.quiz_controller: Optional[QuizController] = None

        # Channel ID -> message showing the running quiz
        self._quiz_messages: Dict[int, discord.Message] = {}

    async def setup_hook(self):
        """Called when the bot is starting up"""
        try:
            logger.info("Setting up bot components...")

            self.config_manager = ConfigManager()
            if self.app_config:
                self.config_manager.apply_config(self.app_config)

            self.score_store = ScoreStore(self.config_manager.get_scores_file())
            self.load_scores()

            api_config = self.app_config.get('trivia', {})
            question_source = OpenTriviaClient(timeout=api_config.get('timeout', 10.0))
            self.quiz_controller = QuizController(question_source, self.score_store, self.config_manager)

            await self.setup_commands()

            logger.info("Bot setup completed successfully")

        except Exception as e:
            logger.error(f"Error during bot setup: {e}")
            raise

    def load_scores(self):
        """Load saved scores; the bot still runs with an empty board if this fails"""
        try:
            self.score_store.load()
        except PersistenceFailure as e:
            logger.error(f"Error loading scores: {e}")

        summary = self.score_store.get_loading_summary()
        if summary['has_errors']:
            logger.warning(
                f"{summary['scores_file']} loaded with {len(summary['errors'])} problems; "
                f"{summary['total_scores']} scores available"
            )
        return summary

    async def setup_commands(self):
        """Register all slash commands"""

        @self.tree.command(name="help", description="Display available commands and their descriptions")
        async def help_command(interaction: discord.Interaction):
            await self.handle_help(interaction)

        @self.tree.command(name="trivia", description="Fetch new questions and start a quiz")
        @app_commands.describe(difficulty="Question difficulty", category="Open Trivia DB category id")
        @app_commands.choices(difficulty=[
            app_commands.Choice(name="Easy", value="easy"),
            app_commands.Choice(name="Medium", value="medium"),
            app_commands.Choice(name="Hard", value="hard"),
        ])
        async def trivia_command(
            interaction: discord.Interaction,
            difficulty: Optional[app_commands.Choice[str]] = None,
            category: Optional[app_commands.Range[int, 1, 1000]] = None
        ):
            await self.handle_trivia(interaction, difficulty.value if difficulty else None, category)

        @self.tree.command(name="answer", description="Answer the current question by number")
        async def answer_command(interaction: discord.Interaction, number: app_commands.Range[int, 1, 6]):
            await self.handle_answer(interaction, number)

        @self.tree.command(name="next", description="Go to the next question")
        async def next_command(interaction: discord.Interaction):
            await self.handle_navigation(interaction, forward=True)

        @self.tree.command(name="previous", description="Go back to the previous question")
        async def previous_command(interaction: discord.Interaction):
            await self.handle_navigation(interaction, forward=False)

        @self.tree.command(name="finish", description="Finish the quiz and see your score")
        async def finish_command(interaction: discord.Interaction):
            await self.handle_finish(interaction)

        @self.tree.command(name="reset", description="Abandon the current quiz")
        async def reset_command(interaction: discord.Interaction):
            await self.handle_reset(interaction)

        @self.tree.command(name="save", description="Save your score to the leaderboard")
        async def save_command(interaction: discord.Interaction, name: Optional[str] = None):
            await self.handle_save(interaction, name)

        @self.tree.command(name="leaderboard", description="Show the best score of each player")
        async def leaderboard_command(interaction: discord.Interaction, limit: Optional[app_commands.Range[int, 1, 25]] = None):
            await self.handle_leaderboard(interaction, limit)

        @self.tree.command(name="scores", description="Show saved scores")
        async def scores_command(interaction: discord.Interaction, limit: Optional[app_commands.Range[int, 1, 25]] = 10):
            await self.handle_scores(interaction, limit)

        @self.tree.command(name="stats", description="Show overall quiz statistics")
        async def stats_command(interaction: discord.Interaction):
            await self.handle_stats(interaction)

        @self.tree.command(name="status", description="Show the current quiz status")
        async def status_command(interaction: discord.Interaction):
            await self.handle_status(interaction)

        logger.info("Slash commands registered successfully")

    async def on_ready(self):
        """Called when the bot has successfully connected to Discord"""
        logger.info(f"Bot is ready! Logged in as {self.user}")
        logger.info(f"Bot is in {len(self.guilds)} guilds")
        try:
            synced = await self.tree.sync()
            logger.info(f"Synced {len(synced)} slash commands")
        except discord.HTTPException as e:
            logger.error(f"Failed to sync slash commands: {e}")

    async def on_error(self, event, *args, **kwargs):
        """Handle general bot errors"""
        logger.error(f"An error occurred in event {event}", exc_info=True)

    async def close(self):
        if self.quiz_controller is not None:
            await self.quiz_controller.shutdown()
        await super().close()

    # Quiz message updates driven by the session timer

    async def _update_quiz_message(self, channel_id: int, embed: discord.Embed):
        message = self._quiz_messages.get(channel_id)
        if message is None:
            return
        try:
            await message.edit(embed=embed)
        except discord.HTTPException as e:
            logger.error(f"Failed to update quiz message for channel {channel_id}: {e}")

    def _timer_callbacks(self, channel_id: int):
        async def on_tick(session: QuizSession):
            # Throttle edits to stay inside Discord rate limits
            if session.time_remaining % 5 == 0 or session.time_remaining <= 5:
                await self._update_quiz_message(channel_id, build_question_embed(session))

        async def on_expire(session: QuizSession):
            if session.finished:
                await self._update_quiz_message(channel_id, build_results_embed(session))
            else:
                await self._update_quiz_message(
                    channel_id,
                    build_question_embed(session, notice="⏰ Time's up! Moved to the next question")
                )

        return on_tick, on_expire

    async def _refresh_question(self, channel_id: int):
        session = self.quiz_controller.get_session(channel_id)
        if session is not None and session.current_question is not None and not session.finished:
            await self._update_quiz_message(channel_id, build_question_embed(session))

    # Command handlers

    async def handle_help(self, interaction: discord.Interaction):
        """Handle /help command"""
        embed = discord.Embed(
            title="🤖 QuizMaster Commands",
            description="Answer trivia questions against the clock!",
            color=0x0099ff
        )
        embed.add_field(
            name="🎮 Playing",
            value=(
                "`/trivia [difficulty] [category]` - Start a new quiz\n"
                "`/answer <number>` - Pick an answer\n"
                "`/next`, `/previous` - Move between questions\n"
                "`/finish` - End the quiz and see your score\n"
                "`/reset` - Abandon the quiz"
            ),
            inline=False
        )
        embed.add_field(
            name="🏆 Scores",
            value=(
                "`/save [name]` - Save your finished quiz\n"
                "`/leaderboard [limit]` - Best score per player\n"
                "`/scores [limit]` - All saved scores\n"
                "`/stats` - Overall statistics"
            ),
            inline=False
        )
        embed.add_field(name="⚙️ Settings", value=self.config_manager.get_settings_summary(), inline=False)
        await interaction.response.send_message(embed=embed, ephemeral=True)

    async def handle_trivia(self, interaction: discord.Interaction, difficulty: Optional[str], category: Optional[int]):
        """Handle /trivia command"""
        channel_id = interaction.channel_id
        await interaction.response.defer(thinking=True)

        on_tick, on_expire = self._timer_callbacks(channel_id)
        result = await self.quiz_controller.begin_quiz(
            channel_id,
            interaction.user.id,
            difficulty=difficulty,
            category=category,
            on_tick=on_tick,
            on_expire=on_expire
        )

        if not result['success']:
            embed = discord.Embed(
                title="❌ Quiz Start Failed",
                description=result['user_message'],
                color=0xff0000
            )
            await interaction.followup.send(embed=embed)
            return

        session = self.quiz_controller.get_session(channel_id)
        try:
            message = await interaction.followup.send(embed=build_question_embed(session), wait=True)
            self._quiz_messages[channel_id] = message
        except discord.HTTPException as e:
            logger.error(f"Failed to send first question for channel {channel_id}: {e}")
            self.quiz_controller.reset_quiz(channel_id, interaction.user.id)

    async def handle_answer(self, interaction: discord.Interaction, number: int):
        """Handle /answer command"""
        channel_id = interaction.channel_id
        result = self.quiz_controller.answer(channel_id, interaction.user.id, number)
        if not result['success']:
            await self.send_error_response(interaction, result['user_message'])
            return
        await interaction.response.send_message(result['user_message'], ephemeral=True)
        await self._refresh_question(channel_id)

    async def handle_navigation(self, interaction: discord.Interaction, forward: bool):
        """Handle /next and /previous commands"""
        channel_id = interaction.channel_id
        if forward:
            result = self.quiz_controller.next_question(channel_id, interaction.user.id)
        else:
            result = self.quiz_controller.previous_question(channel_id, interaction.user.id)

        if not result['success']:
            await self.send_error_response(interaction, result['user_message'])
            return
        await interaction.response.send_message(result['user_message'], ephemeral=True)
        await self._refresh_question(channel_id)

    async def handle_finish(self, interaction: discord.Interaction):
        """Handle /finish command"""
        channel_id = interaction.channel_id
        result = self.quiz_controller.finish_quiz(channel_id, interaction.user.id)
        if not result['success']:
            await self.send_error_response(interaction, result['user_message'])
            return

        session = self.quiz_controller.get_session(channel_id)
        embed = build_results_embed(session)
        await interaction.response.send_message(embed=embed)
        await self._update_quiz_message(channel_id, embed)

    async def handle_reset(self, interaction: discord.Interaction):
        """Handle /reset command"""
        channel_id = interaction.channel_id
        result = self.quiz_controller.reset_quiz(channel_id, interaction.user.id)
        if not result['success']:
            await self.send_error_response(interaction, result['user_message'])
            return
        self._quiz_messages.pop(channel_id, None)
        await interaction.response.send_message(result['user_message'])

    async def handle_save(self, interaction: discord.Interaction, name: Optional[str]):
        """Handle /save command"""
        channel_id = interaction.channel_id
        username = name if name is not None else interaction.user.display_name
        result = self.quiz_controller.save_score(channel_id, interaction.user.id, username)
        if not result['success']:
            await self.send_error_response(interaction, result['user_message'], "❌ Save Failed")
            return

        await interaction.response.send_message(result['user_message'])
        session = self.quiz_controller.get_session(channel_id)
        await self._update_quiz_message(channel_id, build_results_embed(session, result['record']))

    async def handle_leaderboard(self, interaction: discord.Interaction, limit: Optional[int]):
        """Handle /leaderboard command"""
        entries = self.quiz_controller.get_leaderboard(limit)
        total_players = self.quiz_controller.get_stats().unique_users
        await interaction.response.send_message(embed=build_leaderboard_embed(entries, total_players))

    async def handle_scores(self, interaction: discord.Interaction, limit: Optional[int]):
        """Handle /scores command"""
        records = self.quiz_controller.get_scores(limit)
        await interaction.response.send_message(embed=build_scores_embed(records, self.score_store.count()))

    async def handle_stats(self, interaction: discord.Interaction):
        """Handle /stats command"""
        await interaction.response.send_message(embed=build_stats_embed(self.quiz_controller.get_stats()))

    async def handle_status(self, interaction: discord.Interaction):
        """Handle /status command"""
        progress = self.quiz_controller.get_session_progress(interaction.channel_id)
        if progress is None or progress['phase'] == 'idle':
            await self.send_info_response(interaction, "No quiz in this channel. Use /trivia to start one.")
            return

        embed = discord.Embed(title="📊 Quiz Status", color=0x6699ff)
        embed.add_field(name="Phase", value=progress['phase'].replace('_', ' ').title(), inline=True)
        embed.add_field(
            name="Question",
            value=f"{progress['current_question']}/{progress['total_questions']}",
            inline=True
        )
        embed.add_field(name="Answered", value=str(progress['answered']), inline=True)
        owner_id = self.quiz_controller.get_owner(interaction.channel_id)
        if owner_id is not None:
            embed.add_field(name="Player", value=f"<@{owner_id}>", inline=True)
        if progress['timer_running']:
            embed.add_field(name="⏱️ Time Remaining", value=f"{progress['time_remaining']}s", inline=True)
        if progress['phase'] == 'finished':
            embed.add_field(name="Score", value=str(progress['score']), inline=True)
        if progress['error']:
            embed.add_field(name="Error", value=progress['error'], inline=False)
        await interaction.response.send_message(embed=embed, ephemeral=True)

    async def send_error_response(self, interaction: discord.Interaction, message: str, title: str = "❌ Error"):
        """Send formatted error response to user"""
        try:
            embed = discord.Embed(
                title=title,
                description=message,
                color=0xff0000
            )
            embed.set_footer(text="If this error persists, try using /help for available commands")

            if interaction.response.is_done():
                await interaction.followup.send(embed=embed, ephemeral=True)
            else:
                await interaction.response.send_message(embed=embed, ephemeral=True)
        except discord.HTTPException:
            logger.error("Failed to send error response to user")

    async def send_info_response(self, interaction: discord.Interaction, message: str, title: str = "ℹ️ Information"):
        """Send formatted info response to user"""
        try:
            embed = discord.Embed(
                title=title,
                description=message,
                color=0x6699ff
            )

            if interaction.response.is_done():
                await interaction.followup.send(embed=embed, ephemeral=True)
            else:
                await interaction.response.send_message(embed=embed, ephemeral=True)
        except discord.HTTPException:
            logger.error("Failed to send info response to user")


async def run_bot(token=None, config=None):
    """Run the bot with proper error handling"""
    if not token:
        token = os.getenv('DISCORD_BOT_TOKEN')

    if not token:
        logger.error("No Discord bot token provided")
        return

    bot = QuizBot(config)

    try:
        logger.info("Starting QuizMaster bot...")
        await bot.start(token)
    except discord.LoginFailure:
        logger.error("Invalid bot token provided")
    except discord.HTTPException as e:
        logger.error(f"HTTP error occurred: {e}")
    finally:
        if not bot.is_closed():
            await bot.close()
