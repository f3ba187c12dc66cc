from types import SimpleNamespace

from storefront import ai


def test_classify():
    assert ai.classify("I was charged twice, need a refund") == "Billing"
    assert ai.classify("The app keeps showing an error and crashes") == "Technical"
    assert ai.classify("How do I change my profile username") == "Account"
    assert ai.classify("Where is my parcel?") == "Other"


def test_key_phrases_skip_stop_words():
    phrases = ai.extract_key_phrases("The payment was declined on my card")

    assert "payment declined" in phrases
    assert "declined" in phrases
    assert all("the" not in p.split() for p in phrases)


def test_find_duplicate():
    tickets = [
        SimpleNamespace(subject="Login broken", description="Cannot login since the update"),
        SimpleNamespace(subject="Payment declined", description="My card payment was declined at checkout"),
    ]

    match = ai.find_duplicate("Card payment declined", tickets)

    assert match is tickets[1]
    assert ai.find_duplicate("Shipping address question", tickets) is None
    assert ai.find_duplicate("", tickets) is None


def test_suggested_solutions_default_to_other():
    assert ai.suggested_solutions("Billing") == ai.SOLUTIONS["Billing"]
    assert ai.suggested_solutions("Unknown") == ai.SOLUTIONS["Other"]
