import asyncio

from navigator.stream_consumer import StreamConsumer, strip_code_fences


def test_html_mode_holds_back_until_a_close_tag():
    consumer = StreamConsumer(html=True)
    assert consumer.feed(b"<p>Hel") == ""
    assert consumer.feed(b"lo</p><p>wor") == "<p>Hello</p>"
    assert consumer.feed(b"ld</") == ""
    assert consumer.feed(b"p>") == "<p>world</p>"
    assert consumer.finish() == "<p>Hello</p><p>world</p>"


def test_plain_mode_commits_everything():
    consumer = StreamConsumer(html=False)
    assert consumer.feed("Hel") == "Hel"
    assert consumer.feed("lo") == "lo"
    assert consumer.finish() == "Hello"


def test_finish_flushes_the_tail():
    consumer = StreamConsumer()
    consumer.feed("<p>done</p>trailing text")
    assert consumer.text == "<p>done</p>"
    assert consumer.finish() == "<p>done</p>trailing text"


def test_multibyte_split_between_chunks():
    data = "<p>café</p>".encode("utf-8")
    consumer = StreamConsumer()
    cut = data.index(b"\xc3") + 1
    consumer.feed(data[:cut])
    consumer.feed(data[cut:])
    assert consumer.finish() == "<p>café</p>"


def test_consume_reports_every_delta_including_the_final_flush():
    async def chunks():
        for piece in (b"<h3>Out", b"line</h3><ul><li>A", b"</li></ul>", b"tail"):
            yield piece

    deltas = []
    full = asyncio.run(StreamConsumer().consume(chunks(), deltas.append))

    assert full == "<h3>Outline</h3><ul><li>A</li></ul>tail"
    assert "".join(deltas) == full
    assert deltas[-1] == "tail"


def test_strip_code_fences():
    assert strip_code_fences("```html\n<p>x</p>\n```") == "<p>x</p>"
    assert strip_code_fences("  <p>plain</p>\n") == "<p>plain</p>"
