"""Tests for entity extraction."""

from nl_to_runbook.definitions import EntityConfig, ValidationConfig
from nl_to_runbook.extractor import extract, extract_entities, extract_entity
from nl_to_runbook.types import Transform


class TestExtractEntity:
    """Tests for extract_entity function."""

    def test_capture_group_with_transform(self):
        """Test capture group with transform."""
        config = EntityConfig(patterns=(r'status\s+to\s+(\w+)',), transform=Transform.UPPERCASE)
        assert extract_entity('update status to pending', 'status', config) == 'PENDING'

    def test_case_insensitive_match(self):
        """Test case insensitive match."""
        config = EntityConfig(patterns=(r'status\s+to\s+(\w+)',))
        assert extract_entity('UPDATE STATUS TO pending', 'status', config) == 'pending'

    def test_whole_match_without_group(self):
        """Test whole match without group."""
        config = EntityConfig(patterns=(r'\d{4,}P\d+',))
        assert extract_entity('cancel 2025123P6732 now', 'case_id', config) == '2025123P6732'

    def test_patterns_tried_in_order(self):
        """Test patterns tried in order."""
        config = EntityConfig(patterns=(r'id=(\w+)', r'case\s+(\w+)'))
        assert extract_entity('cancel case ABC', 'case_id', config) == 'ABC'

    def test_invalid_pattern_skipped(self):
        """Test invalid pattern skipped."""
        config = EntityConfig(patterns=('[unclosed', r'case\s+(\w+)'))
        assert extract_entity('cancel case ABC', 'case_id', config) == 'ABC'

    def test_no_match(self):
        """Test no match yields None."""
        config = EntityConfig(patterns=(r'case\s+(\d+)',))
        assert extract_entity('cancel it', 'case_id', config) is None

    def test_validation_passes(self):
        """Test validation passes."""
        config = EntityConfig(
            patterns=(r'status\s+to\s+(\w+)',),
            transform=Transform.LOWERCASE,
            validation=ValidationConfig(enum_values=('pending', 'completed')),
        )
        assert extract_entity('status to Pending', 'status', config) == 'pending'

    def test_validation_failure_stops_extraction(self):
        """A later pattern is not tried once a match fails validation."""
        config = EntityConfig(
            patterns=(r'status\s+to\s+(\w+)', r'(pending)'),
            validation=ValidationConfig(enum_values=('pending',)),
        )
        assert extract_entity('status to lost, was pending', 'status', config) is None

    def test_status_normalizer_before_validation(self):
        """Test status aliases are normalized before the enum check."""
        config = EntityConfig(
            patterns=(r'status\s+to\s+([a-z_]+(?:\s+(?:review|hold))?)',),
            transform=Transform.LOWERCASE,
            normalize='status',
            validation=ValidationConfig(enum_values=('accessioning', 'under_review', 'on_hold')),
        )
        assert extract_entity('status to On Hold', 'status', config) == 'on_hold'
        assert extract_entity('status to under review', 'status', config) == 'under_review'
        assert extract_entity('status to accession', 'status', config) == 'accessioning'

    def test_unknown_normalizer_ignored(self):
        """Test an unknown normalizer name leaves the value as transformed."""
        config = EntityConfig(patterns=(r'status\s+to\s+(\w+)',), normalize='nope')
        assert extract_entity('status to Pending', 'status', config) == 'Pending'


class TestExtractEntities:
    """Tests for extract_entities and extract functions."""

    def test_extracts_all_found(self, cancel_case):
        """Test every matching entity is extracted."""
        result = extract_entities('cancel case 2025123p6732 because duplicate', cancel_case.entities)
        assert result.entities == {'case_id': '2025123P6732', 'reason': 'duplicate'}
        assert result.missing_required == []

    def test_missing_required_reported(self, cancel_case):
        """Test missing required reported."""
        result = extract_entities('cancel the case', cancel_case.entities)
        assert result.entities == {}
        assert result.missing_required == ['case_id']

    def test_optional_entity_not_reported(self, cancel_case):
        """Test optional entity not reported."""
        result = extract_entities('cancel case 2025123P6732', cancel_case.entities)
        assert 'reason' not in result.entities
        assert 'reason' not in result.missing_required

    def test_no_entities_configured(self):
        """Test no entities configured."""
        assert extract('cancel case 1', None) == {}
        assert extract('cancel case 1', {}) == {}

    def test_none_query(self, cancel_case):
        """Test a None query extracts nothing."""
        assert extract(None, cancel_case.entities) == {}

    def test_status_example(self):
        """Test extracting a status with a transform."""
        entities = {'status': EntityConfig(patterns=(r'status\s+to\s+(\w+)',), transform=Transform.UPPERCASE)}
        assert extract('update status to pending', entities) == {'status': 'PENDING'}
