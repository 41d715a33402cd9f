"""Gemini helpers: book chat replies and reading-note summaries."""

from typing import Dict, List

import google.generativeai as genai
from flask import current_app

from readingmemory.errors import ApiError, ErrorCode
from readingmemory.utils.logger import get_logger

logger = get_logger(__name__)

# Only the most recent turns are sent back to the model as context
MAX_HISTORY_TURNS = 10

CHAT_SYSTEM_PROMPT = """You are a reading assistant. The user is sharing questions and impressions about "{title}" (author: {author}).

Keep the following in mind when you reply:
- Answer in a concise, friendly tone, in the language the user writes in
- Offer deeper insight into the content of the book
- Respond with empathy to the user's impressions and discoveries
- Suggest new perspectives or related topics
- Keep replies short (3-4 sentences at most)"""

SUMMARY_SYSTEM_PROMPT = "You are an expert at organizing reading notes."

SUMMARY_PROMPT = """The following are reading notes about "{title}" (author: {author}).
From these notes, summarize the main insights and impressions the reader gained as 3-5 bullet points.

Reading notes:
{notes}"""

NO_NOTES_MESSAGE = 'There are no reading notes yet.'


class GeminiService:
    """Thin wrapper around a configured Gemini model name."""

    def __init__(self, model_name: str):
        self.model_name = model_name

    def _model(self, system_instruction: str):
        return genai.GenerativeModel(self.model_name, system_instruction=system_instruction)

    def generate_book_chat_response(self, book_title: str, book_author: str,
                                    previous_chats: List[Dict], user_message: str) -> str:
        """
        Answer a question or comment about a book, continuing the chat history.

        Args:
            book_title: Title of the book being discussed
            book_author: Author of the book
            previous_chats: Oldest-first list of {'message', 'isAI'} dicts
            user_message: The user's new message

        Returns:
            The AI reply text

        Raises:
            ApiError: INTERNAL if Gemini fails or returns no text
        """
        history = [
            {'role': 'model' if chat['isAI'] else 'user', 'parts': [chat['message']]}
            for chat in previous_chats[-MAX_HISTORY_TURNS:]
            if chat.get('message')
        ]

        try:
            model = self._model(CHAT_SYSTEM_PROMPT.format(title=book_title, author=book_author))
            chat_session = model.start_chat(history=history)
            response = chat_session.send_message(
                user_message,
                generation_config=genai.GenerationConfig(max_output_tokens=300, temperature=0.7),
            )
            text = response.text.strip()
        except Exception:
            logger.exception('Gemini API error while generating chat response')
            raise ApiError(ErrorCode.INTERNAL, 'Failed to generate an AI response.')

        if not text:
            raise ApiError(ErrorCode.INTERNAL, 'Failed to generate an AI response.')
        return text

    def generate_book_summary(self, book_title: str, book_author: str, chats: List[Dict]) -> str:
        """Summarize the user's own notes (AI replies are left out)."""
        notes = '\n\n'.join(chat['message'] for chat in chats if not chat['isAI'] and chat.get('message'))
        if not notes:
            return NO_NOTES_MESSAGE

        prompt = SUMMARY_PROMPT.format(title=book_title, author=book_author, notes=notes)
        try:
            response = self._model(SUMMARY_SYSTEM_PROMPT).generate_content(
                prompt,
                generation_config=genai.GenerationConfig(max_output_tokens=500, temperature=0.3),
            )
            text = response.text.strip()
        except Exception:
            logger.exception('Gemini API error while generating summary')
            raise ApiError(ErrorCode.INTERNAL, 'Failed to generate a summary.')

        if not text:
            raise ApiError(ErrorCode.INTERNAL, 'Failed to generate a summary.')
        return text


def init_gemini(api_key: str, model_name: str = 'gemini-2.0-flash') -> GeminiService:
    """Configure Google Gemini with the API key and return the service."""
    try:
        genai.configure(api_key=api_key)
        service = GeminiService(model_name)
        logger.info('Google Gemini AI initialized', extra={'model': model_name})
        return service

    except Exception:
        logger.exception('Failed to initialize Gemini AI')
        raise


def get_gemini_service() -> GeminiService:
    """The service registered on the current app by create_app()."""
    service = current_app.extensions.get('gemini')
    if service is None:
        raise RuntimeError("Gemini AI has not been initialized. Call init_gemini() first.")
    return service
