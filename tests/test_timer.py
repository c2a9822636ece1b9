from exam_trainer.timer import ExamTimer, QuestionTimer, format_time, format_time_verbose


def test_exam_timer_counts_down(clock):
    timer = ExamTimer(60, clock=clock)
    assert timer.elapsed() == 0
    timer.start()
    clock.advance(15)
    assert timer.running
    assert timer.remaining() == 45
    assert not timer.expired()


def test_exam_timer_expires(clock):
    timer = ExamTimer(60, clock=clock)
    timer.start()
    clock.advance(61)
    assert timer.remaining() == 0
    assert timer.expired()


def test_stopped_timer_freezes_and_never_expires(clock):
    timer = ExamTimer(60, clock=clock)
    timer.start()
    clock.advance(20)
    timer.stop()
    clock.advance(100)
    assert timer.elapsed() == 20
    assert not timer.running
    assert not timer.expired()


def test_hidden_timer_never_expires(clock):
    timer = ExamTimer(60, clock=clock)
    timer.start(visible=False)
    clock.advance(600)
    assert not timer.expired()


def test_question_timer(clock):
    timer = QuestionTimer(clock=clock)
    assert timer.elapsed() == 0
    timer.reset()
    clock.advance(7.6)
    assert timer.elapsed() == 8
    timer.reset()
    assert timer.elapsed() == 0
    timer.stop()
    assert not timer.running


def test_format_time():
    assert format_time(0) == "00:00"
    assert format_time(6300) == "105:00"
    assert format_time(75) == "01:15"
    assert format_time_verbose(75) == "1m 15s"
