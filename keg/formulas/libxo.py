from keg.formula import Formula, FormulaRegistry


class _Libxo(Formula):
    """ libxo, a library for generating text, XML, JSON and HTML output. """

    name = "libxo"
    homepage = "https://github.com/Juniper/libxo"
    url = "https://github.com/Juniper/libxo/releases/download/{version}/libxo-{version}.tar.gz"
    depends_on = {"libtool": "build"}


class Libxo016(_Libxo):
    version = "0.1.6"
    # Published with an unexpanded autoconf token
    homepage = "https://github.com/Juniper/@PACKAGE-NAME@"
    url = "https://github.com/Juniper/libxo/releases/{version}/libxo-{version}.tar.gz"
    sha1 = "dc9c6616c7b1364356ec7f90f6440fcb617f68e0"
    steps = [
        ["./configure", "--disable-dependency-tracking",
         "--prefix={prefix}"],
        "make install",
    ]


class Libxo047(_Libxo):
    version = "0.4.7"
    sha1 = "ffcb87f051e3dd05cbc63b381f733b2fe95e191c"
    steps = [
        ["./configure", "--disable-dependency-tracking",
         "--prefix={prefix}"],
        ["make", "install"],
    ]


class _Libxo062(_Libxo):
    steps = [
        ["./configure", "--disable-dependency-tracking", "--disable-silent-rules",
         "--prefix={prefix}"],
        ["make", "install"],
    ]


class Libxo062(_Libxo062):
    version = "0.6.2"
    sha1 = "74c740928c07527b8278ec2e9af94ab01651b3dd"


class Libxo063(_Libxo062):
    version = "0.6.3"
    sha1 = "d2ffcadf73ae2f26bd93bd5ec4dd6fb212874a15"


class Libxo071(_Libxo062):
    version = "0.7.1"
    sha1 = "fbc929b0716d989a8199cc0ed72a5a356c9ca8df"


class Libxo110(_Libxo062):
    version = "1.1.0"
    sha1 = "d5b78c51794e9d551d42dceaddb21ffad3e1b1bd"


class Libxo130(_Libxo):
    version = "1.3.0"
    sha1 = "0cceb5f35fb057db31d44fadf85123dd81a051c2"
    steps = [
        ["./configure", "--disable-dependency-tracking", "--disable-silent-rules",
         "--prefix={prefix}"],
        ["make"],
        ["make", "install"],
    ]


for _cls in [Libxo016, Libxo047, Libxo062, Libxo063, Libxo071, Libxo110, Libxo130]:
    FormulaRegistry.get().add_formula_class(_cls)
