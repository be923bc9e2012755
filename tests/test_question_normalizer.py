from scholar_quiz.core.models import Option
from scholar_quiz.core.question_normalizer import normalize_question, normalize_questions, resolve_image_url

from conftest import HOST_ROOT


def normalize(record):
    return normalize_question(record, host_root=HOST_ROOT)


def test_string_encoded_options_with_correct_alias():
    question = normalize({"id": 7, "question": "Capital of France?", "options": '[{"text":"Paris","correct":"1"}]'})

    assert question.id == "7"
    assert question.options == (Option(text="Paris", image=None, is_correct=True),)


def test_correctness_flag_aliases_and_values():
    question = normalize(
        {
            "question": "Q",
            "options": [
                {"text": "a", "isCorrect": True},
                {"text": "b", "answer": "true"},
                {"text": "c", "correct": 1},
                {"value": "d", "isCorrect": "yes"},
                {"text": "e", "isCorrect": False, "correct": 0},
            ],
        }
    )

    assert [o.is_correct for o in question.options] == [True, True, True, False, False]
    assert question.options[3].text == "d"


def test_plain_and_non_object_options_become_text():
    question = normalize({"question": "Q", "options": ["x", 42, None]})

    assert [o.text for o in question.options] == ["x", "42", "None"]
    assert not any(o.is_correct for o in question.options)


def test_malformed_options_json_degrades_to_empty():
    question = normalize({"question": "Q", "options": "[{broken", "images": "[oops"})

    assert question.options == ()
    assert question.question_image is None


def test_options_of_unexpected_type_are_dropped():
    assert normalize({"question": "Q", "options": {"text": "a"}}).options == ()


def test_correct_key_is_trimmed_and_lowercased():
    assert normalize({"question": "Q", "correctOption": " B "}).correct_option_key == "b"
    assert normalize({"question": "Q", "correctOption": "   "}).correct_option_key is None
    assert normalize({"question": "Q"}).correct_option_key is None


def test_images_array_skips_garbage_entries():
    record = {"question": "Q", "images": ["[", "undefined/x.png", "abc", "/uploads/fig1.png"]}

    assert normalize(record).question_image == f"{HOST_ROOT}/uploads/fig1.png"


def test_images_json_array_of_objects_sets_position():
    record = {
        "question": "Q",
        "images": '[{"url": "https://cdn.example.org/a.png", "position": "bottom"}]',
    }

    question = normalize(record)

    assert question.question_image == "https://cdn.example.org/a.png"
    assert question.image_position == "bottom"


def test_single_json_object_image_is_used_directly():
    question = normalize({"question": "Q", "images": '{"url": "uploads/b.png"}'})

    assert question.question_image == f"{HOST_ROOT}/uploads/b.png"
    assert question.image_position == "top"


def test_bare_string_image_and_record_position():
    question = normalize({"question": "Q", "images": "www.example.com/c.png", "imagePosition": "bottom"})

    assert question.question_image == "https://www.example.com/c.png"
    assert question.image_position == "bottom"


def test_object_without_url_yields_no_image():
    assert normalize({"question": "Q", "images": [{"position": "bottom"}]}).question_image is None


def test_explanation_image_from_json_string():
    question = normalize({"question": "Q", "explanationImage": '{"url": "/exp/1.png"}'})

    assert question.explanation_image == f"{HOST_ROOT}/exp/1.png"
    assert normalize({"question": "Q", "explanationImage": '{bad'}).explanation_image is None


def test_option_images_are_resolved():
    question = normalize({"question": "Q", "options": [{"text": "a", "image": {"url": "/o/a.png"}}]})

    assert question.options[0].image == f"{HOST_ROOT}/o/a.png"


def test_default_explanation():
    assert normalize({"question": "Q"}).explanation == "No explanation provided."


def test_resolve_image_url_rules():
    assert resolve_image_url("https://x.org/a.png", HOST_ROOT) == "https://x.org/a.png"
    assert resolve_image_url("  /a.png ", HOST_ROOT) == f"{HOST_ROOT}/a.png"
    assert resolve_image_url("res.cloudinary.com/a.png", HOST_ROOT) == "https://res.cloudinary.com/a.png"
    assert resolve_image_url("a.png", HOST_ROOT + "/") == f"{HOST_ROOT}/a.png"
    assert resolve_image_url({"url": ""}, HOST_ROOT) is None
    assert resolve_image_url(None, HOST_ROOT) is None
    assert resolve_image_url(12, HOST_ROOT) is None


def test_normalize_questions_skips_non_records():
    questions = normalize_questions([{"question": "Q1"}, "junk", None, {"question": "Q2"}], HOST_ROOT)

    assert [q.text for q in questions] == ["Q1", "Q2"]
