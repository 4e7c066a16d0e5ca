import pytest

from richpresence.dataclasses.presence import Activity, ActivityType, Assets, Button, Party, \
    Timestamps, filter_buttons


def _ids():
    counter = iter(range(100))
    return lambda: "id-{}".format(next(counter))


def test_filter_buttons():
    buttons = [
        Button("", "https://x"),
        Button("Docs", "ftp://x"),
        Button("Docs", "https://x"),
        Button("Repo", "http://y"),
        Button("Extra", "https://z"),
    ]

    assert filter_buttons(buttons) == [Button("Docs", "https://x"), Button("Repo", "http://y")]


def test_filter_buttons_strips_whitespace():
    assert filter_buttons([Button("  Docs ", " https://x  "), Button("   ", "https://y")]) == \
        [Button("Docs", "https://x")]


def test_payload_buttons():
    activity = Activity(buttons=[Button("Site", "https://example.com"), Button("Bad", "mailto:x")])

    assert activity.to_payload(_ids())["buttons"] == [
        {"label": "Site", "url": "https://example.com"}
    ]


def test_no_valid_buttons_are_left_out():
    activity = Activity(state="Idle", buttons=[Button("Bad", "ftp://x")])

    assert "buttons" not in activity.to_payload(_ids())


def test_asset_caption_defaults_to_state():
    activity = Activity(state="Playing", assets=Assets(large_image="logo", large_text=""))

    assert activity.to_payload(_ids())["assets"] == {"large_image": "logo", "large_text": "Playing"}


def test_asset_caption_explicit():
    activity = Activity(state="Playing",
                        assets=Assets(large_image="logo", large_text="Logo",
                                      small_image="icon"))

    assert activity.to_payload(_ids())["assets"] == {
        "large_image": "logo",
        "large_text": "Logo",
        "small_image": "icon",
        "small_text": "Playing",
    }


def test_assets_without_images():
    activity = Activity(state="Playing", assets=Assets(large_text="orphan"))

    assert activity.to_payload(_ids())["assets"] == {}


def test_minimal_payload():
    assert Activity().to_payload(_ids()) == {"type": 0}
    assert Activity(type=ActivityType.COMPETING).to_payload(_ids()) == {"type": 5}


def test_full_payload():
    activity = Activity(type=ActivityType.LISTENING, state="In queue", details="Ranked",
                        timestamps=Timestamps(start=1700000000),
                        secrets={"join": "s3cr3t"})

    assert activity.to_payload(_ids()) == {
        "type": 2,
        "state": "In queue",
        "details": "Ranked",
        "timestamps": {"start": 1700000000},
        "secrets": {"join": "s3cr3t"},
    }


def test_zero_timestamps_are_left_out():
    activity = Activity(state="x", timestamps=Timestamps(0, 0))

    assert "timestamps" not in activity.to_payload(_ids())


def test_party_id_is_generated_once():
    ids = _ids()
    activity = Activity(party=Party(size=[1, 4]))

    assert activity.to_payload(ids)["party"] == {"id": "id-0", "size": [1, 4]}
    # sending again reuses the same party
    assert activity.to_payload(ids)["party"] == {"id": "id-0", "size": [1, 4]}


def test_party_id_is_kept():
    activity = Activity(party=Party(id="lobby", size=[2, 2]))

    assert activity.to_payload(_ids())["party"] == {"id": "lobby", "size": [2, 2]}


def test_party_without_full_size_is_left_out():
    for party in (Party(id="lobby"), Party(size=[1]), Party(size=[1, 2, 3])):
        activity = Activity(party=party)
        payload = activity.to_payload(_ids())

        assert "party" not in payload


def test_is_empty():
    assert Activity().is_empty()
    assert Activity(type=ActivityType.WATCHING).is_empty()

    assert not Activity(state="x").is_empty()
    assert not Activity(details="x").is_empty()
    assert not Activity(timestamps=Timestamps()).is_empty()
    assert not Activity(assets=Assets()).is_empty()
    assert not Activity(party=Party()).is_empty()
    assert not Activity(secrets={"join": "x"}).is_empty()
    assert not Activity(buttons=[Button("a", "https://b")]).is_empty()


def test_text_length_limits():
    Activity(state="x" * 128, details="y" * 128).validate()

    with pytest.raises(ValueError):
        Activity(state="x" * 129).validate()

    with pytest.raises(ValueError):
        Activity(details="y" * 129).to_payload(_ids())
