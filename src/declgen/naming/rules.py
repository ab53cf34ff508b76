"""Per-target identifier rules."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class NameKind(Enum):
    """What an identifier names."""

    NAMESPACE = "namespace"
    TYPE = "type"
    FIELD = "field"
    METHOD = "method"
    PROPERTY = "property"
    PARAMETER = "parameter"
    GENERIC_PARAMETER = "generic-parameter"
    SPECIALIZATION = "specialization"


class CaseStyle(Enum):
    PRESERVE = "preserve"
    SNAKE = "snake"
    PASCAL = "pascal"


@dataclass(frozen=True, eq=False)
class NamingRules:
    """Identifier rules for one emission target.

    Attributes:
        target: Emitter the rules belong to
        reserved: Words that may not be used verbatim
        reserved_lowercase: Words reserved regardless of case
        invalid_characters: Regex matching characters to replace with "_",
            or None to keep names as-is
        prefix: Prepended to reserved words and names starting with a digit
        case: Case style per kind; unlisted kinds are preserved
        allow_overloads: Methods with the same original name may share an identifier
        reserved_namespaces: Top-level namespace names the emitter itself uses
    """

    target: str
    reserved: frozenset[str] = frozenset()
    reserved_lowercase: frozenset[str] = frozenset()
    invalid_characters: str | None = r"[^0-9A-Za-z_]"
    prefix: str = "_dg_"
    case: dict[NameKind, CaseStyle] = field(default_factory=dict)
    allow_overloads: bool = False
    reserved_namespaces: frozenset[str] = frozenset()

    def case_for(self, kind: NameKind) -> CaseStyle:
        return self.case.get(kind, CaseStyle.PRESERVE)


# Identifiers that collide with platform macros when headers are included
# together with libc and networking headers.
PLATFORM_MACROS = frozenset(
    """
    INT_MAX INT_MIN Assert bzero ID VERSION NULL EOF MOD_ID errno linux module
    INFINITY NAN type size time clock rand srand exit
    EPERM ENOENT ESRCH EINTR EIO ENXIO E2BIG ENOEXEC EBADF ECHILD EAGAIN ENOMEM
    EACCES EFAULT ENOTBLK EBUSY EEXIST EXDEV ENODEV ENOTDIR EISDIR EINVAL ENFILE
    EMFILE ENOTTY ETXTBSY EFBIG ENOSPC ESPIPE EROFS EMLINK EPIPE EDOM ERANGE
    EDEADLK ENAMETOOLONG ENOLCK ENOSYS ENOTEMPTY ELOOP EWOULDBLOCK ENOMSG EIDRM
    ECHRNG EL2NSYNC EL3HLT EL3RST ELNRNG EUNATCH ENOCSI EL2HLT EBADE EBADR EXFULL
    ENOANO EBADRQC EBADSLT EDEADLOCK EBFONT ENOSTR ENODATA ETIME ENOSR ENONET
    ENOPKG EREMOTE ENOLINK EADV ESRMNT ECOMM EPROTO EMULTIHOP EDOTDOT EBADMSG
    EOVERFLOW ENOTUNIQ EBADFD EREMCHG ELIBACC ELIBBAD ELIBSCN ELIBMAX ELIBEXEC
    EILSEQ ERESTART ESTRPIPE EUSERS ENOTSOCK EDESTADDRREQ EMSGSIZE EPROTOTYPE
    ENOPROTOOPT EPROTONOSUPPORT ESOCKTNOSUPPORT EOPNOTSUPP EPFNOSUPPORT
    EAFNOSUPPORT EADDRINUSE EADDRNOTAVAIL ENETDOWN ENETUNREACH ENETRESET
    ECONNABORTED ECONNRESET ENOBUFS EISCONN ENOTCONN ESHUTDOWN ETOOMANYREFS
    ETIMEDOUT ECONNREFUSED EHOSTDOWN EHOSTUNREACH EALREADY EINPROGRESS ESTALE
    EUCLEAN ENOTNAM ENAVAIL EISNAM EREMOTEIO EDQUOT ENOMEDIUM EMEDIUMTYPE
    ECANCELED ENOKEY EKEYEXPIRED EKEYREVOKED EKEYREJECTED EOWNERDEAD
    ENOTRECOVERABLE ERFKILL EHWPOISON ENOTSUP
    """.split()
)

CPP_KEYWORDS = frozenset(
    """
    alignas alignof and and_eq asm atomic_cancel atomic_commit atomic_noexcept
    auto bitand bitor bool break case catch char char8_t char16_t char32_t class
    compl concept const consteval constexpr constinit const_cast continue
    co_await co_return co_yield decltype default delete do double dynamic_cast
    else enum explicit export extern false float for friend goto if inline int
    long mutable namespace new noexcept not not_eq nullptr operator or or_eq
    private protected public reflexpr register reinterpret_cast requires return
    short signed sizeof static static_assert static_cast struct switch
    synchronized template this thread_local throw true try typedef typeid
    typename union unsigned using virtual void volatile wchar_t while xor xor_eq
    final override
    """.split()
)

RUST_KEYWORDS = frozenset(
    """
    as async await break const continue crate dyn else enum extern false fn for
    if impl in let loop match mod move mut pub ref return self Self static
    struct super trait true type unsafe use where while abstract become box do
    final macro override priv typeof unsized virtual yield try gen
    bool char str i8 i16 i32 i64 i128 isize u8 u16 u32 u64 u128 usize f32 f64
    panic assert debug_assert assert_eq assert_ne debug_assert_eq debug_assert_ne
    unreachable unimplemented todo Ok Err Some None Box ffi c_void c_char
    c_uchar c_schar c_short c_ushort c_int c_uint c_long c_ulong c_longlong
    c_ulonglong c_float c_double __parent __phantom __this
    """.split()
)


CPP_RULES = NamingRules(
    target="native-header",
    reserved=CPP_KEYWORDS | PLATFORM_MACROS,
    allow_overloads=True,
    # The runtime prelude lives in namespace declgen
    reserved_namespaces=frozenset({"declgen"}),
)

RUST_RULES = NamingRules(
    target="source-crate",
    reserved=RUST_KEYWORDS | PLATFORM_MACROS,
    reserved_lowercase=frozenset({"mod"}),
    case={NameKind.PARAMETER: CaseStyle.SNAKE},
    # Crate root modules other than the namespaces
    reserved_namespaces=frozenset({"runtime", "lib"}),
)

# Interchange documents keep original names; only uniqueness is enforced
JSON_RULES = NamingRules(
    target="interchange-document",
    invalid_characters=None,
    allow_overloads=True,
)


__all__ = [
    "NameKind",
    "CaseStyle",
    "NamingRules",
    "CPP_RULES",
    "RUST_RULES",
    "JSON_RULES",
]
