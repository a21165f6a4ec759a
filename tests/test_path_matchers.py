from restspec.registry.paths import compile_path, match_params, normalize_path, parse_pattern


def test_compile_path_named_segments():
    matcher = compile_path("/users/:id/posts/{post_id}")
    pattern = parse_pattern(matcher.encode())
    assert pattern is not None
    assert match_params(pattern, "/users/42/posts/7") == {"id": "42", "post_id": "7"}
    assert match_params(pattern, "/USERS/42/posts/7/") == {"id": "42", "post_id": "7"}
    assert match_params(pattern, "/users/42/posts") is None
    assert match_params(pattern, "/users//posts/7") is None


def test_literal_segments_are_escaped():
    pattern = parse_pattern(compile_path("/files/a.b").encode())
    assert match_params(pattern, "/files/a.b") == {}
    assert match_params(pattern, "/files/axb") is None


def test_encode_form():
    matcher = compile_path("/health")
    assert matcher.flags == "i"
    assert matcher.encode() == f"/{matcher.source}/i"


def test_parse_pattern_rejects_malformed():
    assert parse_pattern("not-a-pattern") is None
    assert parse_pattern("/([unclosed/i") is None


def test_normalize_path():
    assert normalize_path("users//42/") == "/users/42"
    assert normalize_path("") == "/"


def test_matcher_compiles_directly():
    assert compile_path("/health").compile().match("/HEALTH/") is not None
