# =============================================================================
# Farcaster frame transport
# =============================================================================

from conftest import correct_index, wrong_index

FID = 4242
PLAYER_ID = f"fid:{FID}"


def press(client, quiz_id, button=None, reset=False):
    url = f"/frames/quiz?quizId={quiz_id}"
    if reset:
        url += "&reset=true"
    body = {"untrustedData": {"fid": FID}}
    if button is not None:
        body["untrustedData"]["buttonIndex"] = button
    return client.post(url, json=body)


class TestFrameIntro:

    def test_intro_frame(self, client, quiz):
        response = client.get(f"/frames/quiz?quizId={quiz.id}")

        assert response.status_code == 200
        html = response.get_data(as_text=True)
        assert '<meta property="fc:frame" content="vNext" />' in html
        assert 'content="Start Quiz"' in html
        assert "/frames/quiz?quizId=quiz-1" in html
        assert "https://gateway.pinata.cloud/ipfs/QmTestHash" in html

    def test_intro_unknown_quiz(self, client):
        assert client.get("/frames/quiz?quizId=nope").status_code == 404

    def test_missing_quiz_id(self, client):
        assert client.get("/frames/quiz").status_code == 400


class TestFrameProgression:

    def test_start_button_is_not_scored(self, client, quiz, store):
        response = press(client, quiz.id, button=1)

        assert response.status_code == 200
        assert "Question 1/3" in response.get_data(as_text=True)
        state = store.get_progress(quiz.id, PLAYER_ID)
        assert state.current_question_index == 0
        assert state.score == 0

    def test_buttons_answer_questions(self, client, quiz, store):
        press(client, quiz.id, button=1)

        response = press(client, quiz.id, button=correct_index(quiz, 0) + 1)

        assert "Question 2/3" in response.get_data(as_text=True)
        assert store.get_progress(quiz.id, PLAYER_ID).score == 1

    def test_completion_shows_score_share_and_retry(self, client, quiz, store):
        press(client, quiz.id, button=1)
        press(client, quiz.id, button=correct_index(quiz, 0) + 1)
        press(client, quiz.id, button=wrong_index(quiz, 1) + 1)
        response = press(client, quiz.id, button=correct_index(quiz, 2) + 1)

        html = response.get_data(as_text=True)
        assert "Your score: 2/3" in html
        assert "warpcast.com/~/compose?text=" in html
        assert 'content="Retry Quiz"' in html
        assert "reset=true" in html
        [attempt] = store.get_attempts(quiz.id, PLAYER_ID)
        assert attempt.score == 2

    def test_perfect_score_has_no_retry(self, client, quiz):
        press(client, quiz.id, button=1)
        for i in range(quiz.total_questions):
            response = press(client, quiz.id, button=correct_index(quiz, i) + 1)

        html = response.get_data(as_text=True)
        assert "Your score: 3/3" in html
        assert "Retry Quiz" not in html

    def test_reset_restarts_after_non_perfect(self, client, quiz, store):
        press(client, quiz.id, button=1)
        for i in range(quiz.total_questions):
            press(client, quiz.id, button=wrong_index(quiz, i) + 1)

        response = press(client, quiz.id, button=2, reset=True)

        assert "Question 1/3" in response.get_data(as_text=True)
        assert store.get_progress(quiz.id, PLAYER_ID).current_question_index == 0

    def test_reset_after_perfect_is_refused_in_frame(self, client, quiz, store):
        press(client, quiz.id, button=1)
        for i in range(quiz.total_questions):
            press(client, quiz.id, button=correct_index(quiz, i) + 1)

        response = press(client, quiz.id, button=2, reset=True)

        assert response.status_code == 200
        html = response.get_data(as_text=True)
        assert "cannot retake" in html
        assert "Your score: 3/3" in html
        assert store.get_progress(quiz.id, PLAYER_ID).current_question_index == 3

    def test_missing_untrusted_data(self, client, quiz):
        response = client.post(f"/frames/quiz?quizId={quiz.id}", json={})

        assert response.status_code == 400
        assert response.get_json() == {"error": "Missing untrustedData"}
