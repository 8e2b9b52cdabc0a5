# gemini_client.py - Gemini text and image calls with on-disk caching

import hashlib
import json
import logging
import os
import pathlib
import time

import google.generativeai as genai
from dotenv import load_dotenv
from google import genai as google_genai
from google.genai import types as genai_types

import config
from errors import BackendError


def setup_environment():
    """Loads .env and returns GEMINI_API_KEY (None when missing)."""
    load_dotenv()
    api_key = os.getenv("GEMINI_API_KEY")
    if not api_key:
        logging.error("GEMINI_API_KEY not found in .env file or environment variables.")
        return None
    logging.info("Environment variables loaded and API key found.")
    return api_key


# --- Caching Mechanism ---
def get_cache_path(prompt_text, cache_dir, kind="text"):
    prompt_hash = hashlib.sha256(f"{kind}:{prompt_text}".encode("utf-8")).hexdigest()
    pathlib.Path(cache_dir).mkdir(parents=True, exist_ok=True)
    return pathlib.Path(cache_dir) / f"{prompt_hash}.json"


def load_from_cache(prompt_text, cache_dir, kind="text"):
    if not cache_dir:
        return None
    cache_file = get_cache_path(prompt_text, cache_dir, kind)
    if not cache_file.exists():
        logging.debug(f"Cache miss for file: {cache_file.name}")
        return None
    try:
        with open(cache_file, "r", encoding="utf-8") as f:
            cached_data = json.load(f)
    except (OSError, ValueError) as e:
        logging.warning(f"Error reading cache file {cache_file}: {e}")
        return None
    if "prompt" in cached_data and "response" in cached_data:
        logging.info(f"Cache hit for file: {cache_file.name}")
        return cached_data["response"]
    logging.warning(f"Invalid cache file format: {cache_file}. Ignoring.")
    return None


def save_to_cache(prompt_text, response_text, cache_dir, kind="text"):
    if not cache_dir:
        return
    cache_file = get_cache_path(prompt_text, cache_dir, kind)
    try:
        with open(cache_file, "w", encoding="utf-8") as f:
            json.dump({"prompt": prompt_text, "response": response_text}, f, ensure_ascii=False, indent=4)
        logging.debug(f"Response saved to cache: {cache_file}")
    except OSError as e:
        logging.warning(f"Error saving response to cache file {cache_file}: {e}")


# --- Gemini API Interaction ---
class GeminiBackend:
    """Generation backend used by the orchestrator.

    generate_text() goes through google-generativeai, generate_image() through
    the google-genai client (image output is only exposed there). Both raise
    BackendError once the configured attempts are exhausted.
    """

    def __init__(self, api_key, model_name=None, image_model_name=None, temperature=None,
                 max_retries=None, retry_delay=None, cache_dir=None, use_search=None):
        self.api_key = api_key
        self.model_name = model_name or config.GEMINI_MODEL
        self.image_model_name = image_model_name or config.GEMINI_IMAGE_MODEL
        self.temperature = config.GEMINI_TEMPERATURE if temperature is None else temperature
        self.max_retries = max(1, config.MAX_API_RETRIES if max_retries is None else max_retries)
        self.retry_delay = config.RETRY_DELAY_SECONDS if retry_delay is None else retry_delay
        self.cache_dir = config.CACHE_DIR if cache_dir is None else cache_dir
        self.use_search = config.USE_GOOGLE_SEARCH if use_search is None else use_search
        self._image_client = None
        genai.configure(api_key=api_key)
        logging.info(f"Gemini configured (text: {self.model_name}, images: {self.image_model_name})")

    def generate_text(self, prompt, json_mode=False, grounded=False):
        kind = "json" if json_mode else "text"
        cached = load_from_cache(prompt, self.cache_dir, kind)
        if cached is not None:
            return cached

        generation_config = genai.GenerationConfig(
            temperature=self.temperature,
            response_mime_type="application/json" if json_mode else "text/plain",
        )
        tools = [{"google_search": {}}] if grounded and self.use_search else None
        logging.info(f"Calling Gemini API (prompt length: {len(prompt)} chars, json: {json_mode}, grounded: {bool(tools)})...")

        last_error = "no attempt made"
        for attempt in range(self.max_retries):
            try:
                response = self._call_text_model(prompt, generation_config, tools)
                if response.parts:
                    text = response.text.strip()
                    if text:
                        logging.info(f"Gemini call successful (length: {len(text)} chars)")
                        save_to_cache(prompt, text, self.cache_dir, kind)
                        return text
                    last_error = "empty response"
                elif response.prompt_feedback and response.prompt_feedback.block_reason:
                    last_error = f"blocked ({response.prompt_feedback.block_reason})"
                else:
                    last_error = "no content parts"
            except Exception as e:
                last_error = str(e)
            logging.warning(f"API attempt {attempt + 1}/{self.max_retries} failed: {last_error}")
            if attempt < self.max_retries - 1:
                time.sleep(self.retry_delay)
        raise BackendError(f"Gemini call failed after {self.max_retries} attempt(s): {last_error}")

    def _call_text_model(self, prompt, generation_config, tools):
        if tools:
            try:
                model = genai.GenerativeModel(self.model_name, tools=tools)
                return model.generate_content(prompt, generation_config=generation_config)
            except Exception as e:
                # Older SDKs or models without search support: answer ungrounded.
                logging.warning(f"Grounded call rejected ({e}). Retrying without Google Search.")
        model = genai.GenerativeModel(self.model_name)
        return model.generate_content(prompt, generation_config=generation_config)

    def generate_image(self, prompt, aspect_ratio="16:9"):
        if self._image_client is None:
            self._image_client = google_genai.Client(api_key=self.api_key)
        logging.info(f"Generating image (model: {self.image_model_name}): \"{prompt[:50]}...\"")
        last_error = "no attempt made"
        for attempt in range(self.max_retries):
            try:
                response = self._image_client.models.generate_content(
                    model=self.image_model_name,
                    contents=[prompt],
                    config=genai_types.GenerateContentConfig(
                        response_modalities=["TEXT", "IMAGE"],
                        image_config=genai_types.ImageConfig(aspect_ratio=aspect_ratio),
                    ),
                )
                for part in response.parts or []:
                    if part.inline_data and part.inline_data.data:
                        return part.inline_data.data
                last_error = "no image in response"
            except Exception as e:
                last_error = str(e)
            logging.warning(f"Image attempt {attempt + 1}/{self.max_retries} failed: {last_error}")
            if attempt < self.max_retries - 1:
                time.sleep(self.retry_delay)
        raise BackendError(f"Image generation failed: {last_error}")
