"""Cloud Functions for Firebase entry point (``firebase deploy --only functions``)."""

from firebase_admin import firestore, initialize_app
from firebase_functions import https_fn, options, params

from config import Config
from readingmemory import callables
from readingmemory.services.book_search_service import BookSearchService
from readingmemory.services.gemini_service import init_gemini
from readingmemory.utils.logger import configure_logging

GEMINI_API_KEY = params.SecretParam('GEMINI_API_KEY')
GOOGLE_BOOKS_API_KEY = params.SecretParam('GOOGLE_BOOKS_API_KEY')

configure_logging(Config.LOG_LEVEL)
initialize_app()

CALLABLE_OPTIONS = {
    'region': Config.FUNCTIONS_REGION,
    'timeout_sec': 60,
}


def _uid(req: https_fn.CallableRequest):
    if req.auth and getattr(req.auth, 'uid', None):
        return req.auth.uid
    return None


def _book_search():
    return BookSearchService(GOOGLE_BOOKS_API_KEY.value, timeout=Config.BOOK_API_TIMEOUT)


def _gemini():
    return init_gemini(GEMINI_API_KEY.value, Config.GEMINI_MODEL)


@https_fn.on_call(secrets=[GOOGLE_BOOKS_API_KEY], **CALLABLE_OPTIONS)
def searchBookByISBN(req: https_fn.CallableRequest) -> dict:
    return callables.search_book_by_isbn(req.data, _uid(req), firestore.client(), _book_search())


@https_fn.on_call(secrets=[GOOGLE_BOOKS_API_KEY], **CALLABLE_OPTIONS)
def searchBooksByQuery(req: https_fn.CallableRequest) -> dict:
    return callables.search_books_by_query(req.data, _uid(req), _book_search())


@https_fn.on_call(**CALLABLE_OPTIONS)
def getPopularBooks(req: https_fn.CallableRequest) -> dict:
    return callables.get_popular_books(req.data, _uid(req), firestore.client())


@https_fn.on_call(**CALLABLE_OPTIONS)
def getRecentBooks(req: https_fn.CallableRequest) -> dict:
    return callables.get_recent_books(req.data, _uid(req), firestore.client())


@https_fn.on_call(**CALLABLE_OPTIONS)
def searchPublicBooks(req: https_fn.CallableRequest) -> dict:
    return callables.search_public_books(req.data, _uid(req), firestore.client())


@https_fn.on_call(secrets=[GEMINI_API_KEY], memory=options.MemoryOption.MB_512, **CALLABLE_OPTIONS)
def generateAIResponse(req: https_fn.CallableRequest) -> dict:
    return callables.generate_ai_response(req.data, _uid(req), firestore.client(), _gemini())


@https_fn.on_call(secrets=[GEMINI_API_KEY], memory=options.MemoryOption.MB_512, **CALLABLE_OPTIONS)
def generateBookSummary(req: https_fn.CallableRequest) -> dict:
    return callables.generate_book_summary(req.data, _uid(req), firestore.client(), _gemini())
