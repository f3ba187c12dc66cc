# storefront/ai.py
"""Keyword based helpers for support tickets: classification, duplicate
detection and canned solutions."""
import re

CATEGORY_KEYWORDS = {
    "Billing": [
        "payment", "charge", "refund", "invoice", "subscription", "bill", "price", "discount",
        "coupon", "transaction", "credit card", "debit card", "paypal", "mpesa",
    ],
    "Technical": [
        "bug", "error", "crash", "not working", "broken", "feature", "issue", "problem", "glitch",
        "login", "password", "reset", "device", "app", "website", "connection",
    ],
    "Account": [
        "account", "profile", "login", "password", "email", "change", "update", "delete", "username",
        "registration", "sign up", "sign in", "reset password", "verification",
    ],
}

STOP_WORDS = {
    "i", "me", "my", "myself", "we", "our", "ours", "ourselves", "you", "your", "yours",
    "yourself", "yourselves", "he", "him", "his", "himself", "she", "her", "hers", "herself",
    "it", "its", "itself", "they", "them", "their", "theirs", "themselves", "what", "which",
    "who", "whom", "this", "that", "these", "those", "am", "is", "are", "was", "were", "be",
    "been", "being", "have", "has", "had", "having", "do", "does", "did", "doing", "a", "an",
    "the", "and", "but", "if", "or", "because", "as", "until", "while", "of", "at", "by", "for",
    "with", "about", "against", "between", "into", "through", "during", "before", "after", "above",
    "below", "to", "from", "up", "down", "in", "out", "on", "off", "over", "under", "again", "further",
    "then", "once", "here", "there", "when", "where", "why", "how", "all", "any", "both", "each", "few",
    "more", "most", "other", "some", "such", "no", "nor", "not", "only", "own", "same", "so", "than",
    "too", "very", "s", "t", "can", "will", "just", "don", "should", "now",
}

SOLUTIONS = {
    "Billing": [
        "Check your payment method details in your account settings.",
        "Verify your latest invoice in the billing section.",
        "Contact your bank to ensure the transaction is not being blocked.",
        "Check your email for payment confirmation or failure notifications.",
        "Try using a different payment method from your account settings.",
    ],
    "Technical": [
        "Try restarting your device and the application.",
        "Clear your browser cache and cookies.",
        "Update to the latest version of the application.",
        "Check your internet connection and try again.",
        "Verify that your system meets the minimum requirements.",
    ],
    "Account": [
        "Try resetting your password through the 'Forgot Password' link.",
        "Check if your email address is verified in account settings.",
        "Make sure you're using the correct email address to log in.",
        "Check for any account notifications or alerts in your profile.",
        "If locked out, wait 30 minutes before trying again.",
    ],
    "Other": [
        "Check our FAQ section for common questions and answers.",
        "Review the product documentation for detailed information.",
        "Try searching for your issue in our knowledge base.",
        "Check if there are any ongoing service disruptions in the status page.",
    ],
}

DUPLICATE_THRESHOLD = 0.3


def classify(text: str) -> str:
    """Category with the most keyword hits; ties go to the first listed."""
    lower = (text or "").lower()
    best, best_score = "Other", 0
    for category, words in CATEGORY_KEYWORDS.items():
        score = sum(1 for word in words if word in lower)
        if score > best_score:
            best, best_score = category, score
    return best


def extract_key_phrases(text: str) -> list:
    words = [w for w in re.split(r"\W+", (text or "").lower()) if len(w) > 2 and w not in STOP_WORDS]
    phrases = [f"{a} {b}" for a, b in zip(words, words[1:])]
    phrases.extend(w for w in words if len(w) > 5)
    # dedupe, keep order
    return list(dict.fromkeys(phrases))


def find_duplicate(text: str, tickets):
    """First ticket whose subject and description contain enough of the key phrases."""
    phrases = extract_key_phrases(text)
    if not phrases:
        return None
    for ticket in tickets:
        ticket_text = f"{ticket.subject} {ticket.description}".lower()
        matches = sum(1 for phrase in phrases if phrase in ticket_text)
        if matches and matches / len(phrases) >= DUPLICATE_THRESHOLD:
            return ticket
    return None


def suggested_solutions(category: str) -> list:
    return SOLUTIONS.get(category, SOLUTIONS["Other"])


TICKET_PHRASES = (
    "create ticket", "submit ticket", "open ticket", "help me", "need assistance",
    "speak to support", "talk to agent",
)


def support_reply(message: str, category: str, solutions: list, duplicate=None):
    """Text of the support assistant's answer and whether to offer a ticket.

    An open duplicate ticket replaces the solution list; the ticket offer is
    only made when the user asks for a person or a ticket.
    """
    if duplicate is not None:
        return (
            f"I found a similar support ticket that you already have open (ID: {duplicate.id}, "
            f"Subject: \"{duplicate.subject}\"). Would you like me to show you the status of that "
            f"ticket instead of creating a new one?",
            False,
        )

    lines = [f"Based on your message, this appears to be a {category} issue. "
             f"Here are some solutions that might help:", ""]
    lines.extend(f"{i}. {solution}" for i, solution in enumerate(solutions, 1))
    lines.extend(["", "Did any of these solutions help resolve your issue? "
                      "If not, I can create a support ticket for you."])
    lower = (message or "").lower()
    return "\n".join(lines), any(phrase in lower for phrase in TICKET_PHRASES)
