from extraction.keywords import (
    extract_search_keywords,
    extract_tag_phrases,
    extract_topic_keywords,
    should_trigger_assist,
)


def test_tag_phrases_are_pulled_out_of_text() -> None:
    tags, text = extract_tag_phrases("/报告 @整理 这是内容")
    assert tags == ["报告", "整理"]
    assert text == "这是内容"


def test_tag_phrases_in_the_middle_collapse_spaces() -> None:
    tags, text = extract_tag_phrases("明天 @工作 交周报 /重要")
    assert tags == ["工作", "重要"]
    assert text == "明天 交周报"


def test_reserved_prefix_words_stay_in_text() -> None:
    tags, text = extract_tag_phrases("@笔记 今天学到的东西 /灵感", reserved=["笔记"])
    assert tags == ["灵感"]
    assert text == "@笔记 今天学到的东西"


def test_lone_command_is_not_a_tag() -> None:
    assert extract_tag_phrases("/日报") == ([], "/日报")


def test_email_and_urls_are_not_tags() -> None:
    tags, text = extract_tag_phrases("发邮件给 bob@example.com")
    assert tags == []
    assert text == "发邮件给 bob@example.com"


def test_duplicate_tags_kept_once() -> None:
    tags, _ = extract_tag_phrases("@工作 写总结 @工作")
    assert tags == ["工作"]


def test_tag_extraction_never_raises() -> None:
    assert extract_tag_phrases(None) == ([], "")
    assert extract_tag_phrases("   ") == ([], "")


def test_search_keywords_strip_time_intent_and_action() -> None:
    assert extract_search_keywords("明天要写一篇关于大模型的报告") == "关于大模型的报告"


def test_search_keywords_fall_back_to_full_text_when_too_short() -> None:
    assert extract_search_keywords("学习Go") == "学习Go"


def test_search_keywords_are_capped() -> None:
    assert len(extract_search_keywords("研究" + "很长的主题" * 30)) == 50


def test_assist_trigger_is_substring_and_case_insensitive() -> None:
    assert should_trigger_assist("调研向量数据库")
    assert should_trigger_assist("Research vector databases")
    assert not should_trigger_assist("买牛奶")
    assert not should_trigger_assist("")


def test_assist_trigger_has_no_negation_handling() -> None:
    assert should_trigger_assist("不要写代码")


def test_topic_keywords_filter_length_and_stop_words() -> None:
    words = extract_topic_keywords("大模型 调研，向量数据库、的 RAG 一个 大模型")
    assert words == ["大模型", "调研", "RAG"]


def test_topic_keywords_capped_at_five() -> None:
    assert len(extract_topic_keywords("甲乙 丙丁 戊己 庚辛 壬癸 子丑")) == 5
