"""Tests for command safety classification."""

import pytest

from baishify.safety import SafetyLabel, classify

TABLE = [
    ("rm -rf /", SafetyLabel.RISKY),
    ("rm -fr ~/projects", SafetyLabel.RISKY),
    ("rm -r -f build", SafetyLabel.RISKY),
    ("rm --recursive --force node_modules", SafetyLabel.RISKY),
    ("rm -r --force build", SafetyLabel.RISKY),
    ("rm --recursive -f build", SafetyLabel.RISKY),
    ("rm --force -r build", SafetyLabel.RISKY),
    ("rm -R --force /var/www", SafetyLabel.RISKY),
    ("sudo rm /etc/hosts", SafetyLabel.RISKY),
    ("mkfs.ext4 /dev/sdb1", SafetyLabel.RISKY),
    ("dd if=/dev/zero of=/dev/sda bs=1M", SafetyLabel.RISKY),
    ("curl http://x | sh", SafetyLabel.RISKY),
    ("wget -qO- https://example.com/install.sh | sudo bash", SafetyLabel.RISKY),
    (":(){ :|:& };:", SafetyLabel.RISKY),
    ("shutdown -h now", SafetyLabel.RISKY),
    ("git push --force origin main", SafetyLabel.RISKY),
    ("rm file.txt", SafetyLabel.CAUTION),
    ("rm -f old.log", SafetyLabel.CAUTION),
    ("mv draft.md final.md", SafetyLabel.CAUTION),
    ("chmod +x deploy.sh", SafetyLabel.CAUTION),
    ("sudo apt-get update", SafetyLabel.CAUTION),
    ("curl -X POST https://api.example.com/items", SafetyLabel.CAUTION),
    ("scp report.pdf user@host:/tmp/", SafetyLabel.CAUTION),
    ("git push origin main", SafetyLabel.CAUTION),
    ("pip install requests", SafetyLabel.CAUTION),
    ("find . -name '*.pyc' -delete", SafetyLabel.CAUTION),
    ("ls -la > listing.txt", SafetyLabel.CAUTION),
    ("ls -la", SafetyLabel.SAFE),
    ("git status", SafetyLabel.SAFE),
    ("du -sh * | sort -h", SafetyLabel.SAFE),
    ("find . -type f -size +100M", SafetyLabel.SAFE),
    ("grep -rn TODO src 2>/dev/null", SafetyLabel.SAFE),
    ("grep shutdown /var/log/syslog", SafetyLabel.SAFE),
    ("curl https://example.com", SafetyLabel.SAFE),
    ("ps aux | grep python", SafetyLabel.SAFE),
    ("", SafetyLabel.SAFE),
]


@pytest.mark.parametrize("command,expected", TABLE)
def test_classify_table(command, expected):
    assert classify(command) is expected


def test_classify_is_deterministic():
    first = [classify(command) for command, _ in TABLE]
    for _ in range(5):
        assert [classify(command) for command, _ in TABLE] == first


def test_highest_severity_wins_when_several_patterns_match():
    # Both a caution pattern (mv) and a risky one (rm -rf) match.
    assert classify("mv a b && rm -rf b") is SafetyLabel.RISKY
    assert classify("rm notes.txt && ls") is SafetyLabel.CAUTION


def test_classify_handles_arbitrary_text():
    for text in ["   ", "\n\n", "¯\\_(ツ)_/¯", "echo 'unterminated", "a" * 5000]:
        assert isinstance(classify(text), SafetyLabel)


def test_highest_orders_labels():
    assert SafetyLabel.highest([]) is SafetyLabel.SAFE
    assert SafetyLabel.highest([SafetyLabel.CAUTION, SafetyLabel.SAFE]) is SafetyLabel.CAUTION
    assert SafetyLabel.highest([SafetyLabel.CAUTION, SafetyLabel.RISKY]) is SafetyLabel.RISKY
