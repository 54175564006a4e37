"""Main Telegram bot module."""
import logging
from html import escape
from typing import Any, Dict, List, Optional

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, Update
from telegram.error import BadRequest
from telegram.ext import Application, CallbackContext

from jquiz.config import settings
from jquiz.models.quiz_models import QuizSession
from jquiz.services.answer_processor import AnswerProcessor
from jquiz.services.document_store import DocumentStore, SqlDocumentStore, StoreError
from jquiz.services.local_cache import LocalCache
from jquiz.services.quiz_service import (
    AnswerAlreadySubmittedError,
    NotEnoughWordsError,
    QuizService,
)
from jquiz.services.settings_service import SettingsService
from jquiz.services.stats_store import SOURCE_CACHE, SOURCE_EMPTY, StatsStore
from jquiz.services.vocabulary_service import (
    ORIGIN_CACHE,
    ORIGIN_EMPTY,
    VocabularyImportError,
    VocabularyLoadError,
    VocabularyService,
)

# Get logger for this module
logger = logging.getLogger(__name__)

# Conversation states
MAIN_MENU, PLAYING, IMPORTING = range(3)

# Button texts
MENU = "🏠 Menu"
START_QUIZ = "💡 Start Quiz"
SYNC_VOCABULARY = "🔄 Sync Vocabulary"
VIEW_STATISTICS = "📊 View Statistics"
THEME = "🎨 Theme"
IMPORT_JSON = "📥 Import JSON"
NEXT_QUESTION = "➡️ Next"
SHOW_RESULTS = "🏁 Results"
NEXT_FOCUS = "🔄 Next Focus"

THEME_ICONS = {"midnight": "🌙", "forest": "🌲", "ocean": "🌊", "sunset": "🌇"}

# user_data keys
KEY_USER_ID = "user_id"
KEY_STATS = "stats_store"
KEY_PROCESSOR = "processor"
KEY_WORDS = "words"
KEY_SESSION = "session"
KEY_THEME = "theme_index"

quiz_service = QuizService()


def msg_back_to(text: str) -> str: return f"🔙 {text}"


KB_BACK_TO_MENU = [[InlineKeyboardButton(msg_back_to(MENU), callback_data="back_to_menu")]]


def get_document_store() -> DocumentStore:
    """Durable store for user documents."""
    return SqlDocumentStore()


def get_local_cache() -> LocalCache:
    """Local fallback cache."""
    return LocalCache(settings.paths.cache_dir)


def make_user_id(update: Update) -> str:
    """Stable identifier of the Telegram user."""
    return str(update.effective_user.id)


def theme_icon(context: CallbackContext) -> str:
    index = context.user_data.get(KEY_THEME, 0)
    return THEME_ICONS.get(settings.themes[index]["id"], "")


async def log_received(update: Update, context_type: str) -> None:
    """Log message."""
    txt = ""
    if context_type == "start": txt = ""
    elif update.callback_query: txt = f" {update.callback_query.data}"
    elif update.message: txt = f" {update.message.text}"
    logger.info(f"Received @{context_type:8} from user {update.effective_user.username} ({update.effective_user.id}){txt}")


async def send_popup_message(update: Update, text: str) -> None:
    """Show an alert-style popup, or a plain reply outside of callbacks."""
    if update.callback_query:
        await update.callback_query.answer(text=text, show_alert=True)
    else:
        await update.message.reply_text(f"⚠️ {text}")


async def show(update: Update, text: str, keyboard: List[List[InlineKeyboardButton]]) -> None:
    """Edit the callback message in place, or reply to a text message."""
    reply_markup = InlineKeyboardMarkup(keyboard)
    if update.callback_query:
        try:
            await update.callback_query.edit_message_text(text, reply_markup=reply_markup, parse_mode="HTML")
        except BadRequest as e:
            logger.warning(f"Error editing message: {e}")
    else:
        await update.message.reply_text(text, reply_markup=reply_markup, parse_mode="HTML")


async def bootstrap_user(update: Update, context: CallbackContext) -> Optional[str]:
    """Load the user's statistics, word list and theme once per conversation.

    The word list comes from the local cache, or is downloaded when nothing
    is cached yet. Returns a notice for the user when the statistics or the
    word list could not be loaded, otherwise None.
    """
    if KEY_STATS in context.user_data:
        return None

    user_id = make_user_id(update)
    document_store = get_document_store()
    cache = get_local_cache()

    stats_store = StatsStore(user_id, document_store, cache)
    _, source = await stats_store.load()

    context.user_data[KEY_USER_ID] = user_id
    context.user_data[KEY_STATS] = stats_store
    context.user_data[KEY_PROCESSOR] = AnswerProcessor(user_id, document_store)
    vocabulary = VocabularyService(cache)
    words, origin = vocabulary.cached(), ORIGIN_CACHE
    if not words:
        words, origin = await vocabulary.load_or_cached()
    context.user_data[KEY_WORDS] = words

    try:
        context.user_data[KEY_THEME] = await SettingsService(document_store).get_theme_index(user_id)
    except StoreError as e:
        logger.error(f"Failed to load settings for user {user_id}: {e}")
        context.user_data[KEY_THEME] = 0

    notices = []
    if source == SOURCE_CACHE:
        notices.append("⚠️ Could not reach the server, using your locally saved progress.")
    elif source == SOURCE_EMPTY:
        notices.append("⚠️ Could not load your progress, starting fresh for now.")
    if origin == ORIGIN_EMPTY:
        notices.append("⚠️ Could not download the word list, try Sync Vocabulary later.")
    return "\n".join(notices) or None


def menu_keyboard() -> List[List[InlineKeyboardButton]]:
    return [
        [InlineKeyboardButton(START_QUIZ, callback_data="start_quiz")],
        [InlineKeyboardButton(SYNC_VOCABULARY, callback_data="sync"),
         InlineKeyboardButton(IMPORT_JSON, callback_data="import_json")],
        [InlineKeyboardButton(VIEW_STATISTICS, callback_data="statistics"),
         InlineKeyboardButton(THEME, callback_data="theme")],
    ]


async def handle_start(update: Update, context: CallbackContext) -> int:
    """Start the conversation and show main menu."""
    await log_received(update, "start")

    notice = await bootstrap_user(update, context)
    words = context.user_data.get(KEY_WORDS, [])
    summary = context.user_data[KEY_STATS].summary()

    message = (f"{theme_icon(context)} Welcome to Jquiz, {escape(update.effective_user.first_name or '')}! 👋\n\n"
               f"📚 Words loaded: {len(words)}\n"
               f"🏆 Mastered: {summary.mastered_count}\n"
               f"🎯 Accuracy: {summary.accuracy}%\n")
    if not words:
        message += "\nNo vocabulary yet, sync or import a word list first."
    if notice:
        message += f"\n\n{notice}"

    await show(update, message, menu_keyboard())
    return MAIN_MENU


async def handle_callback(update: Update, context: CallbackContext) -> int:
    """Handle callback queries from inline keyboard."""
    query = update.callback_query

    await log_received(update, "callback")

    if KEY_STATS not in context.user_data and query.data != "back_to_menu":
        await query.answer()
        return await handle_start(update, context)

    if query.data == "noop":
        await query.answer()
        return PLAYING if context.user_data.get(KEY_SESSION) else MAIN_MENU
    elif query.data == "start_quiz":
        return await start_quiz(update, context)
    elif query.data.startswith("answer_"):
        return await handle_quiz_answer(update, context)
    elif query.data == "next_question":
        return await next_question(update, context)
    elif query.data == "back_to_menu":
        await query.answer()
        return await handle_start(update, context)
    elif query.data == "sync":
        return await sync_vocabulary(update, context)
    elif query.data == "import_json":
        return await start_import(update, context)
    elif query.data == "statistics":
        return await show_statistics(update, context)
    elif query.data == "theme":
        return await show_themes(update, context)
    elif query.data.startswith("theme_"):
        return await handle_theme_selection(update, context)

    await query.answer()
    return MAIN_MENU


async def handle_message(update: Update, context: CallbackContext) -> int:
    """Handle free text outside of an import."""
    await log_received(update, "message")
    await update.message.reply_text("Please use the menu or /start")
    return MAIN_MENU


def question_text(session: QuizSession, context: CallbackContext) -> str:
    """Card for the current question, with the verdict once answered."""
    word = session.current
    lines = [f"{theme_icon(context)} Question {session.index + 1}/{len(session.queue)} · Score: {session.score}", ""]
    if word.category:
        lines.append(f"🏷️ {escape(word.category.upper())}")
    lines.append(f"<b>{escape(word.word)}</b>")
    reading = " ".join(part for part in (escape(word.tone), escape(word.kana)) if part)
    if word.romaji:
        reading += f" <i>/{escape(word.romaji)}/</i>"
    if reading:
        lines.append(reading.strip())

    if session.is_answered:
        lines.append("")
        if session.selected.word == word.word:
            lines.append("✅ Correct!")
        else:
            lines.append(f"❌ Wrong. It means: <b>{escape(word.meaning)}</b>")
    return "\n".join(lines)


def question_keyboard(session: QuizSession) -> List[List[InlineKeyboardButton]]:
    if not session.is_answered:
        keyboard = [
            [InlineKeyboardButton(option.meaning, callback_data=f"answer_{i}")]
            for i, option in enumerate(session.options)
        ]
    else:
        keyboard = []
        for option in session.options:
            if option.word == session.current.word:
                mark = "✅ "
            elif option == session.selected:
                mark = "❌ "
            else:
                mark = ""
            keyboard.append([InlineKeyboardButton(f"{mark}{option.meaning}", callback_data="noop")])
        next_text = SHOW_RESULTS if session.is_last_question else NEXT_QUESTION
        keyboard.append([InlineKeyboardButton(next_text, callback_data="next_question")])
    keyboard.append([InlineKeyboardButton(msg_back_to(MENU), callback_data="back_to_menu")])
    return keyboard


async def send_question(update: Update, context: CallbackContext, session: QuizSession) -> None:
    """Show the current question of a session."""
    await show(update, question_text(session, context), question_keyboard(session))


async def start_quiz(update: Update, context: CallbackContext) -> int:
    """Build a new session from the loaded words and the user's statistics."""
    words = context.user_data.get(KEY_WORDS, [])
    stats_store: StatsStore = context.user_data[KEY_STATS]

    try:
        session = quiz_service.start_session(words, stats_store.snapshot, settings.quiz.session_size)
    except NotEnoughWordsError as e:
        await send_popup_message(update, str(e))
        return MAIN_MENU

    await update.callback_query.answer()
    if session.is_finished:
        await show(
            update,
            "🎉 Every loaded word is mastered!\nSync or import more words to keep practicing.",
            [[InlineKeyboardButton(SYNC_VOCABULARY, callback_data="sync")], *KB_BACK_TO_MENU],
        )
        return MAIN_MENU

    context.user_data[KEY_SESSION] = session
    await send_question(update, context, session)
    return PLAYING


async def handle_quiz_answer(update: Update, context: CallbackContext) -> int:
    """Score the chosen option and show the verdict."""
    query = update.callback_query
    session: Optional[QuizSession] = context.user_data.get(KEY_SESSION)
    if session is None or session.is_finished:
        await query.answer()
        return await handle_start(update, context)

    try:
        option = session.options[int(query.data.split("_", 1)[1])]
    except (IndexError, ValueError):
        logger.warning(f"Unknown answer callback: {query.data}")
        await query.answer()
        return PLAYING

    stats_store: StatsStore = context.user_data[KEY_STATS]
    processor: AnswerProcessor = context.user_data[KEY_PROCESSOR]
    try:
        session, result = quiz_service.answer(session, option, stats_store.snapshot, processor)
    except AnswerAlreadySubmittedError:
        await query.answer()
        return PLAYING

    stats_store.commit(result.updated_stats)
    context.user_data[KEY_SESSION] = session

    await query.answer()
    await send_question(update, context, session)
    return PLAYING


async def next_question(update: Update, context: CallbackContext) -> int:
    """Advance the session or show the result screen."""
    await update.callback_query.answer()
    session: Optional[QuizSession] = context.user_data.get(KEY_SESSION)
    if session is None:
        return await handle_start(update, context)
    if not session.is_answered and not session.is_finished:
        await send_question(update, context, session)
        return PLAYING

    session = quiz_service.advance(session, context.user_data.get(KEY_WORDS, []))
    context.user_data[KEY_SESSION] = session
    if not session.is_finished:
        await send_question(update, context, session)
        return PLAYING

    await show(
        update,
        "🏁 Quiz Complete!\n\n"
        f"Score: <b>{quiz_service.result_percentage(session)}%</b> ({session.score}/{len(session.queue)})",
        [[InlineKeyboardButton(NEXT_FOCUS, callback_data="start_quiz"),
          InlineKeyboardButton(msg_back_to(MENU), callback_data="back_to_menu")]],
    )
    return MAIN_MENU


async def sync_vocabulary(update: Update, context: CallbackContext) -> int:
    """Download the word list again."""
    await update.callback_query.answer()
    await show(update, "⏳ Loading vocabulary...", [])

    try:
        words = await VocabularyService(get_local_cache()).load()
    except VocabularyLoadError as e:
        await show(update, f"❌ Failed to load vocabulary.\n{escape(str(e))}", menu_keyboard())
        return MAIN_MENU

    context.user_data[KEY_WORDS] = words
    await show(update, f"✅ Loaded {len(words)} words.", menu_keyboard())
    return MAIN_MENU


async def start_import(update: Update, context: CallbackContext) -> int:
    """Ask for a pasted JSON word list."""
    await update.callback_query.answer()
    await show(
        update,
        "📥 Paste a JSON array of words, for example:\n\n"
        '<code>[{"word": "水", "kana": "みず", "meaning_en": "water"}]</code>',
        KB_BACK_TO_MENU,
    )
    return IMPORTING


async def handle_import_message(update: Update, context: CallbackContext) -> int:
    """Parse a pasted JSON word list."""
    await log_received(update, "import")
    try:
        words = VocabularyService(get_local_cache()).import_json(update.message.text or "")
    except VocabularyImportError as e:
        await update.message.reply_text(f"❌ {e}\n\nTry again or go back to the menu.",
                                        reply_markup=InlineKeyboardMarkup(KB_BACK_TO_MENU))
        return IMPORTING

    context.user_data[KEY_WORDS] = words
    await update.message.reply_text(f"✅ Imported {len(words)} items",
                                    reply_markup=InlineKeyboardMarkup(menu_keyboard()))
    return MAIN_MENU


async def show_statistics(update: Update, context: CallbackContext) -> int:
    """Show user statistics."""
    await update.callback_query.answer()
    summary = context.user_data[KEY_STATS].summary()
    words = context.user_data.get(KEY_WORDS, [])

    message = (
        "📊 Your Learning Statistics:\n\n"
        f"Words loaded: {len(words)}\n"
        f"Words practiced: {summary.total_words}\n"
        f"Mastered words: {summary.mastered_count}\n"
        f"Correct answers: {summary.total_correct}\n"
        f"Total attempts: {summary.total_attempts}\n"
        f"Accuracy: {summary.accuracy}%\n"
    )
    await show(update, message, KB_BACK_TO_MENU)
    return MAIN_MENU


def theme_keyboard(context: CallbackContext) -> List[List[InlineKeyboardButton]]:
    current = context.user_data.get(KEY_THEME, 0)
    keyboard = [
        [InlineKeyboardButton(
            f"{'✔️ ' if i == current else ''}{THEME_ICONS.get(theme['id'], '')} {theme['name']}",
            callback_data=f"theme_{i}",
        )]
        for i, theme in enumerate(settings.themes)
    ]
    keyboard.extend(KB_BACK_TO_MENU)
    return keyboard


async def show_themes(update: Update, context: CallbackContext) -> int:
    """Show the theme picker."""
    await update.callback_query.answer()
    await show(update, "🎨 Choose a theme", theme_keyboard(context))
    return MAIN_MENU


async def handle_theme_selection(update: Update, context: CallbackContext) -> int:
    """Apply a theme and save it."""
    try:
        index = int(update.callback_query.data.split("_", 1)[1])
        if not 0 <= index < len(settings.themes):
            raise ValueError(index)
    except ValueError:
        await update.callback_query.answer()
        return MAIN_MENU

    context.user_data[KEY_THEME] = index
    saved = await SettingsService(get_document_store()).save_theme(context.user_data[KEY_USER_ID], index)
    if saved:
        await update.callback_query.answer(text=f"Theme set to {settings.themes[index]['name']}")
    else:
        await send_popup_message(update, "Failed to save theme")
    await show(update, "🎨 Choose a theme", theme_keyboard(context))
    return MAIN_MENU


async def drain_pending_writes(application: Application) -> None:
    """Wait for background statistics writes of every user."""
    user_data: Dict[Any, Dict[str, Any]] = application.user_data
    for data in list(user_data.values()):
        processor: Optional[AnswerProcessor] = data.get(KEY_PROCESSOR)
        if processor is not None and processor.pending:
            await processor.drain()
