"""
Schemas - Portal-managed chatbot settings.
"""
from pydantic import BaseModel, Field


class ChatbotSettings(BaseModel):
    """
    Presentation settings managed in the clinic portal.
    Aliases match the portal's camelCase JSON.
    """
    welcome_message: str = Field(
        "Hello! How can I help you with your nail concerns today?",
        alias="welcomeMessage",
    )
    bot_display_name: str = Field("Niamh", alias="botDisplayName")
    cta_label: str = Field("Ask Niamh", alias="ctaButtonLabel")
    tone: str = Field("Friendly", alias="chatbotTone")

    model_config = {"populate_by_name": True}


DEFAULT_SETTINGS = ChatbotSettings()
