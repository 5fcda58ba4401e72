from typing import Any, Dict

from clinic_intake.domain.models import (
    Derived,
    Fixed,
    FlowDefinition,
    InputKind,
    Option,
    SideEffect,
    StepSpec,
)
from clinic_intake.execution.binding import FieldBinding, FieldBindingTable
from clinic_intake.execution.prompts import Template, render
from clinic_intake.execution.validation import is_valid_name, min_length
from clinic_intake.schemas.settings import DEFAULT_SETTINGS, ChatbotSettings
from clinic_intake.data.faq import find_relevant_info, match_faq

YES_NO = (Option(label="Yes", value="yes"), Option(label="No", value="no"))

# ==============================================================================
# DERIVED MESSAGES & BRANCHES
# ==============================================================================


def _welcome(data: Dict[str, Any], settings: ChatbotSettings) -> str:
    # A welcome message customised in the portal replaces the built-in greeting
    if settings.welcome_message and settings.welcome_message != DEFAULT_SETTINGS.welcome_message:
        return settings.welcome_message
    return (
        f"👋 Hello! I'm {settings.bot_display_name}, your Nail Surgery Clinic virtual assistant. "
        "I'll help gather some information about your nail concerns and connect you with our "
        "team if needs be. Before we begin, I'll need to collect some basic information. "
        "Rest assured, your data is kept private and secure."
    )


def _analysis_message(data: Dict[str, Any], settings: ChatbotSettings) -> str:
    analysis = data.get("image_analysis")
    if not analysis or analysis.get("is_fallback"):
        return (
            "⚠️ We'd like to gather a little more information from you to provide "
            "the best assessment."
        )
    return render(Template.ANALYSIS_SUMMARY, analysis=analysis)


def _faq_answer(data: Dict[str, Any], settings: ChatbotSettings) -> str:
    question = data.get("additional_help")
    if question:
        return f"{find_relevant_info(question)}\n\nAnything else I can help with?"
    return (
        "Thanks for your question! Feel free to ask more, or visit "
        "www.nailsurgeryclinic.ie for more info."
    )


def _survey_reply(data: Dict[str, Any], settings: ChatbotSettings) -> str:
    rating = data.get("emoji_survey")
    if rating in ("excellent", "good"):
        return "Thanks for the positive feedback! 🌟"
    if rating == "okay":
        return "Thanks for your feedback. We're always looking to improve."
    if rating == "poor":
        return "We're sorry to hear that. Please contact hello@nailsurgeryclinic.ie so we can help."
    return "Thanks again!"


def _after_additional_help(value: str) -> str:
    return "faq_response" if match_faq(value) else "final_question"


def _selected(value: str) -> str:
    # Option values double as step ids
    return value


# ==============================================================================
# STEP DEFINITIONS
# ==============================================================================

# --- IDENTITY ---
welcome = StepSpec(
    id="welcome",
    message=Derived(_welcome),
    next=Fixed("name"),
)

name = StepSpec(
    id="name",
    message=Fixed("What's your name?"),
    input_kind=InputKind.SHORT_TEXT,
    validation=is_valid_name,
    error_message="Please enter your name (at least 2 characters)",
    next=Fixed("name_greeting"),
)

name_greeting = StepSpec(
    id="name_greeting",
    message=Derived(lambda data, settings: f"Hi {data.get('name')} - nice to chat to you."),
    next=Fixed("issue_category"),
    side_effect=SideEffect.parse("persist-create"),
    delay_ms=800,
)

# --- TRIAGE ---
issue_category = StepSpec(
    id="issue_category",
    message=Fixed("What best describes your nail concern?"),
    input_kind=InputKind.OPTION_CHOICE,
    options=(
        Option(label="Ingrown toenail", value="ingrown_followup"),
        Option(label="Fungal infection", value="fungal_followup"),
        Option(label="Toenail trauma or injury", value="trauma_followup"),
        Option(label="Finger nail issue or injury", value="fingernail_followup"),
        Option(label="Other/Not sure", value="other_followup"),
    ),
    next=Derived(_selected),
)

ingrown_followup = StepSpec(
    id="ingrown_followup",
    message=Fixed("Which best describes your ingrown toenail?"),
    input_kind=InputKind.OPTION_CHOICE,
    options=(
        Option(label="Mild redness or tenderness", value="mild"),
        Option(label="Recurring ingrown nail", value="recurring"),
        Option(label="Painful, inflamed or pus present", value="infected"),
        Option(label="Tried home treatment with no success", value="unsuccessful_treatment"),
    ),
    next=Fixed("previous_treatment"),
)

fungal_followup = StepSpec(
    id="fungal_followup",
    message=Fixed("What symptoms are you noticing?"),
    input_kind=InputKind.OPTION_CHOICE,
    options=(
        Option(label="Yellow or discoloured nails", value="discolouration"),
        Option(label="Thickened nails", value="thick"),
        Option(label="Nail crumbling or flaking", value="crumble"),
        Option(label="Tried treatments that didn't work", value="resistant"),
    ),
    next=Fixed("previous_treatment"),
)

trauma_followup = StepSpec(
    id="trauma_followup",
    message=Fixed("What type of injury occurred?"),
    input_kind=InputKind.OPTION_CHOICE,
    options=(
        Option(label="Dropped something on toe", value="impact"),
        Option(label="Nail lifted or cracked", value="cracked"),
        Option(label="Nail turned black or blue", value="bruised"),
        Option(label="Other injury", value="other"),
    ),
    next=Fixed("previous_treatment"),
)

fingernail_followup = StepSpec(
    id="fingernail_followup",
    message=Fixed("What type of injury occurred?"),
    input_kind=InputKind.OPTION_CHOICE,
    options=(
        Option(label="Dropped something on fingernail", value="impact"),
        Option(label="Nail lifted or cracked", value="cracked"),
        Option(label="Nail turned black or blue", value="bruised"),
        Option(label="Other injury", value="other"),
    ),
    next=Fixed("previous_treatment"),
)

other_followup = StepSpec(
    id="other_followup",
    message=Fixed("Please describe your nail concern in more detail:"),
    input_kind=InputKind.LONG_TEXT,
    validation=min_length(10),
    error_message="Please enter at least 10 characters",
    next=Fixed("previous_treatment"),
)

previous_treatment = StepSpec(
    id="previous_treatment",
    message=Fixed("Have you had any treatments for this condition before?"),
    input_kind=InputKind.OPTION_CHOICE,
    options=YES_NO,
    next=Derived(lambda value: "treatment_details" if value == "yes" else "upload_prompt"),
    side_effect=SideEffect.parse("persist-patch:triage"),
)

treatment_details = StepSpec(
    id="treatment_details",
    message=Fixed("Please describe some of the treatments you had"),
    input_kind=InputKind.LONG_TEXT,
    validation=min_length(10),
    error_message="Please enter at least 10 characters",
    next=Fixed("upload_prompt"),
)

# --- IMAGE CAPTURE ---
upload_prompt = StepSpec(
    id="upload_prompt",
    message=Fixed(
        "Would you like to upload a photo of your nail concern? This can help us provide "
        "a better assessment."
    ),
    input_kind=InputKind.OPTION_CHOICE,
    options=(
        Option(label="Yes", value="image_upload"),
        Option(label="No", value="email"),
    ),
    next=Derived(_selected),
    side_effect=SideEffect.parse("persist-patch:treatment"),
)

image_upload = StepSpec(
    id="image_upload",
    message=Fixed("Please upload a clear photo of your nail issue."),
    input_kind=InputKind.IMAGE,
    error_message="Failed to upload image. Please try again.",
    next=Fixed("image_analysis"),
)

image_analysis = StepSpec(
    id="image_analysis",
    message=Derived(_analysis_message),
    next=Fixed("email"),
    side_effect=SideEffect.parse("analyze-image"),
    delay_ms=2000,
)

# --- CONTACT ---
email = StepSpec(
    id="email",
    message=Fixed("Please enter your email so we can follow up with more information:"),
    input_kind=InputKind.EMAIL,
    optional=True,
    error_message="Please enter a valid email address",
    next=Fixed("phone"),
    side_effect=SideEffect.parse("persist-patch:image"),
)

phone = StepSpec(
    id="phone",
    message=Fixed("What's the best number to reach you on?"),
    input_kind=InputKind.PHONE,
    error_message="Please enter a valid phone number",
    next=Fixed("booking_confirmation"),
    side_effect=SideEffect.parse("persist-patch:contact"),
)

booking_confirmation = StepSpec(
    id="booking_confirmation",
    message=Derived(
        lambda data, settings: (
            f"Thanks, {data.get('name')}!\nWe appreciate the time in explaining your issues.\n"
            "Would you like one of our consultants to call you to discuss possible next steps?"
        )
    ),
    input_kind=InputKind.OPTION_CHOICE,
    options=YES_NO,
    next=Derived(lambda value: "callback_yes" if value == "yes" else "callback_no"),
)

callback_yes = StepSpec(
    id="callback_yes",
    message=Fixed("OK great - we will reach out to you within the next 24 hours."),
    next=Fixed("final_question"),
)

callback_no = StepSpec(
    id="callback_no",
    message=Fixed(
        "OK no problem - Whenever you are ready you can contact the clinic directly to "
        "further discuss or arrange your appointment:\n\n"
        "📧 hello@nailsurgeryclinic.ie\n📞 +353 87 4766949\n"
        "📍 65 Collins Ave West, Donnycarney, Dublin 9, D09K0Y3\n\n"
        "We'll take care of everything from there."
    ),
    next=Fixed("final_question"),
    delay_ms=1000,
)

# --- WRAP-UP ---
final_question = StepSpec(
    id="final_question",
    message=Derived(
        lambda data, settings: f"Is there anything else I can help you with today, {data.get('name')}?"
    ),
    input_kind=InputKind.OPTION_CHOICE,
    options=(
        Option(label="No, that's all for now", value="thanks"),
        Option(label="Yes, I have another question", value="additional_help"),
        Option(label="I'd like to know about pricing", value="pricing_info"),
    ),
    next=Derived(_selected),
    side_effect=SideEffect.parse("persist-patch:callback"),
)

pricing_info = StepSpec(
    id="pricing_info",
    message=Fixed(
        "Surgical procedures range from €550–€600 depending on the procedure. A €180 deposit "
        "is required to hold your place. All costs are discussed with you prior to treatment."
    ),
    next=Fixed("final_question"),
)

additional_help = StepSpec(
    id="additional_help",
    message=Fixed("What would you like to know more about?"),
    input_kind=InputKind.LONG_TEXT,
    optional=True,
    next=Derived(_after_additional_help, targets=("faq_response", "final_question")),
)

faq_response = StepSpec(
    id="faq_response",
    message=Derived(_faq_answer),
    next=Fixed("final_question"),
)

thanks = StepSpec(
    id="thanks",
    message=Fixed(
        "Thank you for contacting The Nail Surgery Clinic! We'll be in touch soon. "
        "Take care of those toes! 👋"
    ),
    next=Fixed("emoji_survey"),
    delay_ms=1000,
)

emoji_survey = StepSpec(
    id="emoji_survey",
    message=Fixed("Before you go, how was your experience today?"),
    input_kind=InputKind.OPTION_CHOICE,
    options=(
        Option(label="🥰 Excellent", value="excellent"),
        Option(label="😊 Good", value="good"),
        Option(label="🙂 Okay", value="okay"),
        Option(label="😔 Poor", value="poor"),
    ),
    next=Fixed("survey_response"),
)

survey_response = StepSpec(
    id="survey_response",
    message=Derived(_survey_reply),
    next=Fixed("submit_consultation"),
    delay_ms=1000,
)

submit_consultation = StepSpec(
    id="submit_consultation",
    message=Fixed("Submitting your consultation..."),
    next=Fixed("end"),
    side_effect=SideEffect.parse("persist-patch:final"),
    delay_ms=500,
)

end = StepSpec(
    id="end",
    message=Fixed(
        "🔦 Tip: Avoid tight shoes and trim nails straight across to prevent future nail "
        "issues. If the nail in question is inflamed, bathe regularly with warm water and "
        "salt. Take care!"
    ),
    is_terminal=True,
    side_effect=SideEffect.parse("forward-portal"),
)

# ==============================================================================
# FLOW, BINDINGS & MILESTONES
# ==============================================================================

INTAKE_FLOW = FlowDefinition.build(
    "nail_surgery_intake",
    "welcome",
    welcome,
    name,
    name_greeting,
    issue_category,
    ingrown_followup,
    fungal_followup,
    trauma_followup,
    fingernail_followup,
    other_followup,
    previous_treatment,
    treatment_details,
    upload_prompt,
    image_upload,
    image_analysis,
    email,
    phone,
    booking_confirmation,
    callback_yes,
    callback_no,
    final_question,
    pricing_info,
    additional_help,
    faq_response,
    thanks,
    emoji_survey,
    survey_response,
    submit_consultation,
    end,
)

FIELD_BINDINGS = FieldBindingTable({
    "name": "name",
    "issue_category": FieldBinding("issue_category", lambda value: value.removesuffix("_followup")),
    "ingrown_followup": "issue_specifics",
    "fungal_followup": "issue_specifics",
    "trauma_followup": "issue_specifics",
    "fingernail_followup": "issue_specifics",
    "other_followup": "symptom_description",
    "previous_treatment": "previous_treatment",
    "treatment_details": "treatment_details",
    "upload_prompt": FieldBinding("has_image", lambda value: value == "image_upload"),
    "image_upload": "image_path",
    "email": "email",
    "phone": "phone",
    "booking_confirmation": "booking_confirmation",
    "final_question": "final_question",
    "additional_help": "additional_help",
    "emoji_survey": "emoji_survey",
})

# Fields written by the creation milestone
CREATE_FIELDS = ("name",)

# Milestone -> fields pushed by its partial update.
# conversation_log and completed_steps are derived from the session itself.
MILESTONES: Dict[str, tuple] = {
    "triage": ("issue_category", "issue_specifics", "symptom_description"),
    "treatment": ("previous_treatment", "treatment_details"),
    "image": ("has_image", "image_path", "image_analysis"),
    "contact": ("email", "phone"),
    "callback": ("booking_confirmation",),
    "final": (
        "name",
        "issue_category",
        "issue_specifics",
        "symptom_description",
        "previous_treatment",
        "treatment_details",
        "has_image",
        "image_path",
        "image_analysis",
        "email",
        "phone",
        "booking_confirmation",
        "final_question",
        "additional_help",
        "emoji_survey",
        "conversation_log",
        "completed_steps",
    ),
}
