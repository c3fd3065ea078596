"""
Tests for the image-safety and similarity collaborators and text helpers.
"""
import json
import os
import sys

import pytest
from unittest.mock import MagicMock, patch

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))


def client_error(code, operation='DetectModerationLabels'):
    from botocore.exceptions import ClientError
    return ClientError({'Error': {'Code': code, 'Message': code}}, operation)


@pytest.fixture
def media_bucket():
    from shared.config import config

    with patch.object(config, 'MEDIA_BUCKET', 'chapturs-media'):
        yield


class TestImageUrls:
    """URL and format validation that needs no image analysis."""

    @pytest.mark.parametrize('url', ['', None, 'ftp://host/a.jpg', 'javascript:alert(1)'])
    def test_invalid_url(self, url):
        from shared.image_safety import check_image_safety

        result = check_image_safety(url)

        assert result['passed'] is False
        assert result['flags'] == ['invalid_image_url']

    def test_unsupported_extension(self, media_bucket):
        from shared.image_safety import check_image_safety

        with patch('shared.image_safety.detect_moderation_labels') as detect:
            result = check_image_safety('https://chapturs-media.s3.amazonaws.com/covers/a.tiff')

        assert result['flags'] == ['invalid_image_format']
        detect.assert_not_called()

    def test_external_url_only_validated(self, media_bucket):
        from shared.image_safety import check_image_safety

        with patch('shared.image_safety.detect_moderation_labels') as detect:
            result = check_image_safety('https://example.com/cover.png')

        assert result == {'passed': True, 'score': 1.0, 'flags': [], 'analysis': 'url_validation'}
        detect.assert_not_called()

    def test_extract_s3_key(self, media_bucket):
        from shared.image_safety import extract_s3_key_from_url

        assert extract_s3_key_from_url('https://chapturs-media.s3.amazonaws.com/covers/a.jpg') == 'covers/a.jpg'
        assert extract_s3_key_from_url(
            'https://chapturs-media.s3.us-east-1.amazonaws.com/covers/a.jpg') == 'covers/a.jpg'
        assert extract_s3_key_from_url('/covers/a.jpg') == 'covers/a.jpg'
        assert extract_s3_key_from_url('https://other.s3.amazonaws.com/a.jpg') is None


class TestImageModeration:
    """Rekognition-backed checks."""

    def test_clean_image(self, media_bucket):
        from shared.image_safety import check_image_safety

        with patch('shared.image_safety.detect_moderation_labels', return_value=[]) as detect:
            result = check_image_safety('covers/a.jpg')

        detect.assert_called_once_with('chapturs-media', 'covers/a.jpg')
        assert result == {'passed': True, 'score': 1.0, 'flags': [], 'analysis': 'rekognition'}

    def test_unsafe_labels_become_flags(self, media_bucket):
        from shared.image_safety import check_image_safety

        labels = [
            {'Name': 'Explicit Nudity', 'ParentName': '', 'Confidence': 97.5},
            {'Name': 'Nudity', 'ParentName': 'Explicit Nudity', 'Confidence': 97.5},
            {'Name': 'Violence', 'ParentName': '', 'Confidence': 85.0},
        ]
        with patch('shared.image_safety.detect_moderation_labels', return_value=labels):
            result = check_image_safety('covers/a.jpg')

        assert result['passed'] is False
        assert result['flags'] == ['image_explicit_nudity', 'image_violence']
        assert result['score'] == 0.025

    def test_labels_parsed_from_client(self, media_bucket):
        from shared import image_safety

        client = MagicMock()
        client.detect_moderation_labels.return_value = {
            'ModerationLabels': [{'Name': 'Violence', 'ParentName': '', 'Confidence': 90.0}]
        }
        with patch.object(image_safety, 'get_rekognition_client', return_value=client):
            labels = image_safety.detect_moderation_labels('chapturs-media', 'covers/a.jpg')

        assert labels == [{'Name': 'Violence', 'ParentName': '', 'Confidence': 90.0}]
        kwargs = client.detect_moderation_labels.call_args[1]
        assert kwargs['Image'] == {'S3Object': {'Bucket': 'chapturs-media', 'Name': 'covers/a.jpg'}}

    def test_throttling_is_transient(self, media_bucket):
        from shared.errors import TransientCollaboratorError
        from shared.image_safety import check_image_safety

        with patch('shared.image_safety.detect_moderation_labels',
                   side_effect=client_error('ThrottlingException')):
            with pytest.raises(TransientCollaboratorError) as exc:
                check_image_safety('covers/a.jpg')

        assert exc.value.service == 'image-analysis'

    def test_connection_failure_is_transient(self, media_bucket):
        from botocore.exceptions import EndpointConnectionError
        from shared.errors import TransientCollaboratorError
        from shared.image_safety import check_image_safety

        with patch('shared.image_safety.detect_moderation_labels',
                   side_effect=EndpointConnectionError(endpoint_url='https://rekognition')):
            with pytest.raises(TransientCollaboratorError):
                check_image_safety('covers/a.jpg')

    def test_bad_image_fails_instead_of_erroring(self, media_bucket):
        from shared.image_safety import check_image_safety

        with patch('shared.image_safety.detect_moderation_labels',
                   side_effect=client_error('InvalidImageFormatException')):
            result = check_image_safety('covers/a.jpg')

        assert result['passed'] is False
        assert result['flags'] == ['invalid_image_format']


class TestSimilarity:
    """Tests for check_similarity and check_duplicate."""

    TEXT = 'The lighthouse keeper counted every ship that passed the northern rocks at dawn'

    @patch('shared.similarity.dynamo')
    def test_similar_section_matches(self, mock_dynamo):
        from shared.similarity import check_similarity

        mock_dynamo.scan.return_value = [
            {'workId': 'other', 'sectionId': 's9', 'content': self.TEXT},
            {'workId': 'far', 'sectionId': 's8', 'content': 'Completely unrelated recipe for lemon cake'},
        ]

        result = check_similarity(self.TEXT, exclude_work_id='mine')

        assert result['isDuplicate'] is True
        assert result['maxSimilarity'] == 1.0
        assert result['matches'] == [{'workId': 'other', 'sectionId': 's9', 'similarity': 1.0}]

    @patch('shared.similarity.dynamo')
    def test_no_corpus(self, mock_dynamo):
        from shared.similarity import check_similarity

        mock_dynamo.scan.return_value = []

        assert check_similarity(self.TEXT) == {'isDuplicate': False, 'matches': [], 'maxSimilarity': 0.0}

    @patch('shared.similarity.dynamo')
    def test_store_outage_is_transient(self, mock_dynamo):
        from shared.errors import PersistenceError, TransientCollaboratorError
        from shared.similarity import check_similarity

        mock_dynamo.scan.side_effect = PersistenceError('down')

        with pytest.raises(TransientCollaboratorError):
            check_similarity(self.TEXT)

    @patch('shared.similarity.dynamo')
    def test_exact_duplicate(self, mock_dynamo):
        from shared.similarity import check_duplicate
        from shared.utils import content_hash

        mock_dynamo.query.return_value = [{'workId': 'other', 'sectionId': 's9'}]

        result = check_duplicate(self.TEXT, exclude_work_id='mine')

        assert result['isDuplicate'] is True
        assert result['contentHash'] == content_hash(self.TEXT)
        assert mock_dynamo.query.call_args[1]['index_name'] == 'byContentHash'


class TestTextHelpers:
    """Tests for the shared text utilities."""

    def test_cosine_similarity(self):
        from shared.utils import cosine_similarity

        assert cosine_similarity('red apple pie', 'red apple pie') == pytest.approx(1.0)
        assert cosine_similarity('red apple pie', 'blue ocean wave') == 0.0
        assert cosine_similarity('', 'anything here') == 0.0

    def test_content_hash_ignores_case_and_punctuation(self):
        from shared.utils import content_hash

        assert content_hash('Hello,   World!') == content_hash('hello world')

    def test_extract_text_from_blocks(self):
        from shared.utils import extract_text

        document = {'blocks': [
            {'type': 'prose', 'text': 'It rained.'},
            {'type': 'image', 'url': 'x.png'},
            {'type': 'dialogue', 'lines': [{'speaker': 'Ann', 'text': 'Hello'}]},
        ]}

        text = extract_text(json.dumps(document))

        assert 'It rained.' in text
        assert 'Hello' in text
        assert 'x.png' not in text

    def test_extract_text_passthrough(self):
        from shared.utils import extract_text

        assert extract_text('plain words') == 'plain words'
        assert extract_text(None) == ''
        assert extract_text('{broken json') == '{broken json'
