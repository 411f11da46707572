import json

from refurbops.schemas.reported_issues import IssuesKind, ReportedIssues


def test_checklist_json_string():
    raw = json.dumps({
        "failedItems": [
            "[3] Keyboard: sticky keys",
            {"itemIndex": 7, "itemText": "Battery", "notes": "holds 20 minutes"},
        ],
        "notes": "Customer return",
    })
    issues = ReportedIssues.parse(raw)

    assert issues.kind == IssuesKind.CHECKLIST
    assert issues.has_issues
    assert issues.failed_items[0].index == 3
    assert issues.failed_items[0].text == "Keyboard"
    assert issues.failed_items[0].notes == "sticky keys"
    assert issues.failed_items[1].index == 7
    assert issues.notes == "Customer return"


def test_legacy_functional_and_cosmetic():
    issues = ReportedIssues.parse('{"functional": "No POST", "cosmetic": "Scratched lid"}')

    assert issues.kind == IssuesKind.LEGACY
    assert issues.has_issues
    assert issues.summary() == "Functional: No POST; Cosmetic: Scratched lid"


def test_legacy_cosmetic_only_needs_no_repair():
    issues = ReportedIssues.parse({"functional": "", "cosmetic": "Dented corner"})

    assert issues.kind == IssuesKind.LEGACY
    assert not issues.has_issues


def test_plain_text_is_kept():
    issues = ReportedIssues.parse("screen flickers")

    assert issues.kind == IssuesKind.TEXT
    assert issues.has_issues
    assert issues.summary() == "screen flickers"


def test_empty_values():
    for value in (None, "", {}):
        issues = ReportedIssues.parse(value)
        assert issues.kind == IssuesKind.EMPTY
        assert not issues.has_issues
        assert issues.summary() == "No issues reported"


def test_stored_typed_record_round_trips():
    original = ReportedIssues.parse('{"failedItems": ["[1] Display"]}')
    stored = original.model_dump(mode="json")

    assert ReportedIssues.parse(stored) == original
