from importlib import resources


def load_grammar() -> str:
    with resources.files(__package__).joinpath("data/grammar.md").open("r", encoding="utf-8") as fh:
        return fh.read()


def load_example() -> str:
    with resources.files(__package__).joinpath("data/example.dot").open("r", encoding="utf-8") as fh:
        return fh.read()
