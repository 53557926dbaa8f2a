"""
Tests for the command-line runner.

Every run uses the mock provider and the offline word tokenizer.
"""

import pytest

from runner.run_template import build_parser, cli_model_overrides, main, split_argv


@pytest.fixture
def cli_env(isolated_config, tokenizer_file, monkeypatch):
    monkeypatch.setenv("PROMPTBOX_TOKENIZER", str(tokenizer_file))
    article = isolated_config / "article.md"
    article.write_text("one two three four five six seven eight nine ten", encoding="utf-8")
    return isolated_config


def test_split_argv():
    assert split_argv(["summarize", "--dry-run", "--", "--post", "x"]) == (
        ["summarize", "--dry-run"],
        ["--post", "x"],
    )
    assert split_argv(["summarize"]) == (["summarize"], [])


def test_cli_overrides_leave_unset_values_empty():
    args = build_parser().parse_args(["summarize", "--trim-arg", "a", "--trim-arg", "b"])
    overrides = cli_model_overrides(args)
    assert overrides["model"] is None
    assert overrides["context"]["trim_args"] == ["a", "b"]
    assert overrides["context"]["limit"] is None


def test_dry_run_prints_prompt(cli_env, capsys):
    code = main(["summarize", "--provider", "mock", "--dry-run", "--article", "article.md"])

    assert code == 0
    out = capsys.readouterr().out
    assert "in 5 bullet points" in out
    assert out.rstrip().endswith("nine ten")


def test_dry_run_trims_to_context_limit(cli_env, capsys):
    code = main(
        [
            "summarize",
            "--provider", "mock",
            "--dry-run",
            "--context-limit", "18",
            "--reserve-output", "0",
            "--",
            "--article", "article.md",
            "--audience", "cats",
        ]
    )

    assert code == 0
    out = capsys.readouterr().out
    # 23 tokens rendered; the template trims its article argument by 5
    assert "Summarize the following document in 5 bullet points for cats." in out
    assert "nine ten" not in out
    assert "one two" in out


def test_run_prints_response(cli_env, capsys):
    code = main(["summarize", "--provider", "mock", "--article", "article.md"])

    assert code == 0
    # The mock provider echoes the prompt back as its response
    assert "one two three" in capsys.readouterr().out


def test_pre_and_post_text(cli_env, capsys):
    code = main(
        [
            "summarize", "--provider", "mock", "--dry-run",
            "--pre", "BEFORE", "--post", "AFTER",
            "--article", "article.md",
        ]
    )

    assert code == 0
    out = capsys.readouterr().out.strip()
    assert out.startswith("BEFORE\n\n")
    assert out.endswith("\n\nAFTER")


def test_project_config_is_applied(cli_env, capsys):
    (cli_env / "promptbox").mkdir()
    (cli_env / "promptbox" / "hello.yaml").write_text(
        "options:\n  - name: who\ntemplate: Hello {who}\n", encoding="utf-8"
    )
    (cli_env / "promptbox.yaml").write_text("model:\n  provider: mock\n", encoding="utf-8")

    code = main(["hello", "--dry-run", "--who", "world"])

    assert code == 0
    assert capsys.readouterr().out.strip() == "Hello world"


def test_missing_template_is_an_error(cli_env, capsys):
    code = main(["no_such_template", "--provider", "mock", "--dry-run"])

    assert code == 1
    assert "not found" in capsys.readouterr().err


def test_missing_required_argument_is_an_error(cli_env, capsys):
    code = main(["summarize", "--provider", "mock", "--dry-run"])

    assert code == 1
    assert "--article" in capsys.readouterr().err


def test_reserve_output_too_large_is_an_error(cli_env, capsys):
    code = main(
        [
            "summarize", "--provider", "mock", "--dry-run",
            "--context-limit", "100", "--article", "article.md",
        ]
    )

    # The template reserves 512 output tokens
    assert code == 1
    assert "reserving 512 tokens" in capsys.readouterr().err


def test_negative_reserve_output_is_rejected(cli_env, capsys):
    long_article = cli_env / "long.md"
    long_article.write_text(" ".join(["word"] * 50), encoding="utf-8")

    code = main(
        [
            "summarize", "--provider", "mock", "--dry-run",
            "--context-limit", "20", "--reserve-output", "-100",
            "--article", "long.md",
        ]
    )

    captured = capsys.readouterr()
    assert code == 1
    assert captured.out == ""
    assert "reserve_output must not be negative" in captured.err


def test_zero_context_limit_is_rejected(cli_env, capsys):
    code = main(
        [
            "summarize", "--provider", "mock", "--dry-run",
            "--context-limit", "0", "--article", "article.md",
        ]
    )

    assert code == 1
    assert "must be positive" in capsys.readouterr().err


def test_no_stream_prints_whole_response(cli_env, capsys):
    code = main(["summarize", "--provider", "mock", "--no-stream", "--article", "article.md"])

    assert code == 0
    assert capsys.readouterr().out.rstrip().endswith("nine ten")


def test_print_prompt_comes_before_response(cli_env, capsys):
    code = main(
        ["summarize", "--provider", "mock", "--print-prompt", "--article", "article.md"]
    )

    assert code == 0
    out = capsys.readouterr().out
    # Prompt, blank line, then the echoed response
    assert out.count("one two three") == 2
    assert out.index("Document:") < out.rindex("Summarize the following")


def test_unreadable_image_is_an_error(cli_env, capsys):
    code = main(
        [
            "summarize", "--provider", "mock",
            "--image", "missing.png", "--article", "article.md",
        ]
    )

    assert code == 1
    assert "missing.png" in capsys.readouterr().err


def test_non_image_attachment_is_an_error(cli_env, capsys):
    code = main(
        [
            "summarize", "--provider", "mock",
            "--image", "article.md", "--article", "article.md",
        ]
    )

    assert code == 1
    assert "does not look like an image" in capsys.readouterr().err


def test_model_flags_reach_options():
    args = build_parser().parse_args(
        ["summarize", "--top-k", "40", "--format", "json", "--image", "a.png", "--image", "b.png"]
    )
    overrides = cli_model_overrides(args)
    assert overrides["top_k"] == 40
    assert overrides["format"] == "json"
    assert args.images == ["a.png", "b.png"]
