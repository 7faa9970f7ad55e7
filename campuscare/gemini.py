"""
This module provides an interface to the Google Gemini models used by CampusCare.

It is responsible for:
- Configuring the Gemini API with the key from the settings.
- Predicting campus health risks from emergency, hospital and mess records.
- Answering first-aid questions in a running conversation.
- Estimating the nutrition content of a photographed meal.

The models are treated as opaque request/response functions: failures are raised
as `UpstreamServiceError` carrying the service's own message, with no retry.
"""
# campuscare/gemini.py

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, List

import google.generativeai as genai

from campuscare.errors import UpstreamServiceError
from campuscare.models import HealthRisk, NutritionEstimate
from campuscare.store import to_wire

logger = logging.getLogger(__name__)

JSON_CONFIG = {"response_mime_type": "application/json"}

FIRST_AID_INSTRUCTION = """
You are a calm first-aid assistant for university students on campus.
Give short, practical first-aid steps. Always tell the user to use the SOS page or call
the campus hospital for anything serious, and never claim to replace a doctor.
"""

_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.MULTILINE)


def parse_json_response(text: str) -> Any:
    """Parses a model response that should be JSON, tolerating Markdown code fences."""
    cleaned = _FENCE.sub("", (text or "").strip()).strip()
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise UpstreamServiceError(f"The AI service returned an unreadable response: {e}") from e


def _records_for_prompt(records) -> List[Dict[str, Any]]:
    rows = []
    for record in records:
        doc = record.to_doc() if hasattr(record, "to_doc") else dict(record)
        doc = {key: value for key, value in doc.items() if key != "studentId"}
        if getattr(record, "id", None):
            doc["id"] = record.id
        rows.append(to_wire(doc))
    return rows


class GeminiClient:
    """Wraps the Gemini text and vision models."""

    def __init__(self, api_key: str | None, model_name: str = "gemini-1.5-flash", vision_model_name: str | None = None):
        if api_key:
            genai.configure(api_key=api_key)
        else:
            logger.warning("GEMINI_API_KEY is not set; AI features will fail until it is configured.")
        self.model = genai.GenerativeModel(model_name)
        self.chat_model = genai.GenerativeModel(model_name, system_instruction=FIRST_AID_INSTRUCTION)
        self.vision_model = genai.GenerativeModel(vision_model_name or model_name)

    def _generate(self, model, contents, **kwargs):
        try:
            response = model.generate_content(contents, **kwargs)
            return response.text
        except UpstreamServiceError:
            raise
        except Exception as e:
            logger.error("Error calling Gemini API: %s", e)
            raise UpstreamServiceError(str(e)) from e

    def predict_health_risks(self, emergency_reports, hospital_feedbacks, mess_food_ratings) -> List[HealthRisk]:
        """Asks the model for campus health risks suggested by the three record sets.

        Returns:
            A list of `HealthRisk`; empty when the model sees no risk.
        """
        # The prompt fixes the output schema; the response is trusted to follow it.
        prompt = f"""
        You are a public-health analyst for a university campus. Study the data below and identify
        potential health risks (for example food-borne illness clusters, overloaded hospital services,
        recurring emergencies in one location).

        Emergency reports:
        {json.dumps(_records_for_prompt(emergency_reports), indent=2)}

        Hospital feedback:
        {json.dumps(_records_for_prompt(hospital_feedbacks), indent=2)}

        Mess food ratings (1-5, with sickness reports):
        {json.dumps(_records_for_prompt(mess_food_ratings), indent=2)}

        Respond with JSON only, in this format:
        {{"healthRisks": [{{"riskType": "...", "riskLevel": "Low|Medium|High", "affectedArea": "...",
        "description": "...", "recommendations": "..."}}]}}
        """
        text = self._generate(self.model, prompt, generation_config=JSON_CONFIG)
        data = parse_json_response(text)
        items = data.get("healthRisks", []) if isinstance(data, dict) else data
        return [HealthRisk.from_dict(item) for item in items or []]

    def first_aid_chat(self, history: List[Dict[str, str]]) -> str:
        """Continues a first-aid conversation.

        Args:
            history: Messages as ``{"role": "user" | "model", "content": "..."}``; the last one is the
                user's new question.

        Returns:
            The assistant's reply.
        """
        if not history or history[-1].get("role") != "user":
            raise ValueError("The conversation must end with a user message.")
        past = [{"role": m["role"], "parts": [m["content"]]} for m in history[:-1] if m.get("content")]
        try:
            chat = self.chat_model.start_chat(history=past)
            response = chat.send_message(history[-1]["content"])
            return response.text
        except Exception as e:
            logger.error("Error in first-aid chat: %s", e)
            raise UpstreamServiceError(str(e)) from e

    def estimate_nutrition(self, image_bytes: bytes, mime_type: str) -> NutritionEstimate:
        """Estimates calories and macronutrients for the meal in a photo."""
        prompt = """
        Estimate the nutrition of the meal in this photo. Respond with JSON only:
        {"mealDescription": "short description", "calories": number, "proteinGrams": number,
        "carbsGrams": number, "fatGrams": number}
        """
        contents = [prompt, {"mime_type": mime_type, "data": image_bytes}]
        text = self._generate(self.vision_model, contents, generation_config=JSON_CONFIG)
        data = parse_json_response(text)
        if not isinstance(data, dict):
            raise UpstreamServiceError("The AI service returned an unexpected nutrition format.")
        return NutritionEstimate.from_dict(data)
