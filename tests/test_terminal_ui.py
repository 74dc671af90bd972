from terminal_ui import display_files, display_summary, start_spinner, stop_spinner


def test_spinner_without_terminal_prints_checkmark(capsys):
    thread = start_spinner("Analysing run.trace")
    stop_spinner(thread, "Analysing run.trace")

    assert thread is None
    assert capsys.readouterr().out == "✓ Analysing run.trace\n"


def test_failed_step_prints_cross(capsys):
    stop_spinner(None, "Writing run.report", ok=False)

    assert capsys.readouterr().out == "✗ Writing run.report\n"


def test_summary_aligns_values(capsys):
    display_summary("run.trace", [("Double frees", 1), ("Wrong frees", 12)], total=("Pending", 300))

    out = capsys.readouterr().out
    assert "• run.trace :" in out
    assert "   Double frees :   1\n" in out
    assert "   Wrong frees  :  12\n" in out
    assert " ‣ Pending      : 300\n" in out


def test_display_files(capsys):
    display_files(["a.trace", "b.trace"])

    assert capsys.readouterr().out == "   {0} a.trace\n   {1} b.trace\n\n"
