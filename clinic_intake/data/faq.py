"""
Clinic FAQ used by the free-text "anything else" branch of the intake flow.
"""

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass(frozen=True)
class FAQItem:
    question: str
    answer: str
    keywords: List[str] = field(default_factory=list)


PRICING = (
    "Surgical procedures range from €550 to €600 depending on the treatment. "
    "A €180 deposit is required to secure your appointment. Full pricing will be "
    "confirmed during consultation."
)
BOOKING = (
    "To book, please contact us directly: hello@nailsurgeryclinic.ie or +353 87 4766949. "
    "Surgeries take place on Mondays from 2:00–5:40 PM."
)
LOCATION = "We're located at 65 Collins Ave West, Donnycarney, Dublin 9, D09K0Y3."
FALLBACK_ANSWER = (
    "Thanks for your question. Please visit www.nailsurgeryclinic.ie or contact us "
    "directly for more info."
)

FAQ_DATA: List[FAQItem] = [
    FAQItem(
        question="What are your prices or costs for nail surgery?",
        answer=PRICING,
        keywords=["price", "cost", "fee", "pricing", "expensive", "how much"],
    ),
    FAQItem(
        question="How do I book an appointment?",
        answer=BOOKING,
        keywords=["appointment", "booking", "schedule", "book", "when", "available"],
    ),
    FAQItem(
        question="Where is your clinic located?",
        answer=LOCATION,
        keywords=["location", "address", "where", "clinic", "office", "directions"],
    ),
    FAQItem(
        question="What procedures do you offer?",
        answer=(
            "We specialize in PNA (Partial Nail Avulsion) and TNA (Total Nail Avulsion) "
            "procedures, minor surgeries performed under local anaesthetic. Only one foot "
            "is operated on per visit."
        ),
        keywords=["procedure", "surgery", "pna", "tna", "treatment", "what do you do"],
    ),
    FAQItem(
        question="Do you treat fungal nail infections?",
        answer=(
            "We offer advanced laser therapy for fungal nail infections, ideal for cases "
            "resistant to traditional treatments."
        ),
        keywords=["laser", "fungal", "infection", "fungus", "onychomycosis"],
    ),
    FAQItem(
        question="What are the risks of nail surgery?",
        answer=(
            "Local anaesthetic is used during surgery. Rare side effects include low blood "
            "pressure and irregular heart rhythm. Avoid grapefruit on the day of surgery."
        ),
        keywords=["anaesthetic", "risk", "side effects", "complications", "safe"],
    ),
    FAQItem(
        question="What conditions do you treat?",
        answer=(
            "We treat ingrown toenails, fungal infections, toenail trauma/injury, and "
            "fingernail issues. Our procedures include PNA and TNA surgeries under local "
            "anaesthetic."
        ),
        keywords=["conditions", "treat", "ingrown", "trauma", "injury", "fingernail"],
    ),
    FAQItem(
        question="How long does the procedure take?",
        answer=(
            "Surgeries are performed on Mondays from 2:00–5:40 PM. Each procedure is a minor "
            "surgery under local anaesthetic, typically taking less than an hour."
        ),
        keywords=["time", "duration", "long", "how long", "procedure time"],
    ),
    FAQItem(
        question="Do you accept insurance?",
        answer=(
            "Please contact us directly to discuss insurance coverage and payment options. "
            "We can help you understand what might be covered by your insurance provider."
        ),
        keywords=["insurance", "covered", "pay", "payment", "medical card"],
    ),
    FAQItem(
        question="What should I expect after surgery?",
        answer=(
            "After surgery, you'll receive aftercare instructions. Avoid tight shoes and trim "
            "nails straight across to prevent future issues. If inflamed, bathe regularly "
            "with warm water and salt."
        ),
        keywords=["aftercare", "recovery", "after", "post", "care", "instructions"],
    ),
    FAQItem(
        question="Can I drive after the procedure?",
        answer=(
            "Since procedures use local anaesthetic, most patients can drive themselves home. "
            "However, we recommend having someone accompany you if you prefer."
        ),
        keywords=["drive", "transport", "after procedure"],
    ),
    FAQItem(
        question="How do I prepare for surgery?",
        answer=(
            "Avoid grapefruit on the day of surgery. Wear comfortable, loose-fitting shoes. "
            "Follow any specific preparation instructions provided during your consultation."
        ),
        keywords=["prepare", "preparation", "before", "diet", "shoes", "clothing"],
    ),
]


def match_faq(query: str) -> Optional[FAQItem]:
    """First FAQ entry with a keyword contained in the query, if any."""
    lowered = query.lower()
    for item in FAQ_DATA:
        if any(keyword in lowered for keyword in item.keywords):
            return item
    return None


def find_relevant_info(query: str) -> str:
    item = match_faq(query)
    return item.answer if item else FALLBACK_ANSWER
